"""Database models — re-exports all models.

Import from here:  from app.models import Worker, WorkTask, ...
Or from submodules: from app.models.auth import Worker
"""

from .base import Base  # noqa: F401

# Workers & access
from .auth import UserManagementAudit, Worker, WorkerInvitation, WorkerStageAssignment  # noqa: F401

# Shopify orders
from .orders import Order, OrderItem  # noqa: F401

# Production: workflows, batches, tasks, time
from .production import (  # noqa: F401
    CustomStage,
    QcResult,
    StageTransition,
    TimeLog,
    WorkBatch,
    WorkflowExecutionLog,
    WorkflowTemplate,
    WorkLog,
    WorkTask,
)

# Quality
from .quality import (  # noqa: F401
    ComponentTracking,
    InspectionResult,
    ProductionIssue,
    QualityCheckpoint,
    QualityCheckpointTemplate,
    QualityHold,
    QualityPattern,
)

# QC checklists
from .qc import QcChecklistItem, QcProductionStep, QcSubmission  # noqa: F401

# Repairs
from .repairs import (  # noqa: F401
    RepairAction,
    RepairIssue,
    RepairKnowledgeBase,
    RepairOrder,
    RepairPartUsed,
    RepairTimeLog,
)

# Sync
from .sync import SyncLog  # noqa: F401

# System Config
from .config import SystemConfig  # noqa: F401

# Bug reports
from .error_report import BugReport  # noqa: F401
