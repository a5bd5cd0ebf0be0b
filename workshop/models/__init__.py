"""Workshop models."""
from workshop.models.analysis import ActivityContext, AnalysisResult, CategoryScore, CoachingIssue, RawCoaching
from workshop.models.teaching import EliteEssayExample, ReflectionPrompt, ReflectionPromptSet, TeachingCoachingOutput, TeachingIssue
from workshop.models.versions import EssayVersion, VersionComparison, VersionHistorySummary, VersionMetadata
from workshop.models.chat_context import WorkshopChatContext
