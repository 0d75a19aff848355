"""
SQLAlchemy models
"""
from insider.core.database import Base  # noqa: F401
from insider.models.achievement import (Achievement,  # noqa: F401
                                        AchievementCategory,
                                        AchievementProgress, AchievementTier,
                                        RequirementType, UserAchievement)
from insider.models.ai_consent import (AIAccessLog, AIConsent,  # noqa: F401
                                       AIFeature, ConsentStatus,
                                       ConversationAISettings)
from insider.models.e2ee import (ConversationE2EESettings,  # noqa: F401
                                 DeviceKey, DeviceType, KeyBackup,
                                 MegolmSessionShare, OneTimePrekey,
                                 VerificationMethod)
from insider.models.messaging import (DMConversation, DMMessage,  # noqa: F401
                                      DMParticipant, EncryptionAlgorithm)
from insider.models.notification import (Notification,  # noqa: F401
                                         NotificationPreference,
                                         NotificationType)
from insider.models.prompt import (Prompt, PromptCategory,  # noqa: F401
                                   PromptRating, PromptSave, PromptSort,
                                   PromptStatus, PromptVisibility)
from insider.models.resource import (CommentLike,  # noqa: F401
                                     DiscoveryPriority, DiscoveryQueueItem,
                                     DiscoveryStatus, Favorite,
                                     ModerationStatus, Resource,
                                     ResourceComment, ResourceReview,
                                     ResourceStatus, ReviewHelpfulVote)
from insider.models.user import Session, User, UserFollow, UserRole  # noqa: F401
from insider.models.verification import (CrossSigningKey,  # noqa: F401
                                         CrossSigningKeyType, DeviceSignature,
                                         SasStatus, SasVerification,
                                         TrustLevel, UserTrust)
