ORG_AMMC = 'AMMC'
ORG_NIA = 'NIA'
ORG_SYSTEM = 'SYSTEM'

ORGANIZATION_CHOICES = (
    (ORG_AMMC, 'AMMC'),
    (ORG_NIA, 'NIA'),
)
SURVEY_ORGANIZATIONS = (ORG_AMMC, ORG_NIA)

TIMELINE_ORGANIZATION_CHOICES = ORGANIZATION_CHOICES + ((ORG_SYSTEM, 'System'),)

PRIORITY_LOW = 'low'
PRIORITY_MEDIUM = 'medium'
PRIORITY_HIGH = 'high'
PRIORITY_URGENT = 'urgent'

PRIORITY_CHOICES = (
    (PRIORITY_LOW, 'Low'),
    (PRIORITY_MEDIUM, 'Medium'),
    (PRIORITY_HIGH, 'High'),
    (PRIORITY_URGENT, 'Urgent'),
)

ASSIGNMENT_UNASSIGNED = 'unassigned'
ASSIGNMENT_PARTIAL = 'partially_assigned'
ASSIGNMENT_FULL = 'fully_assigned'

ASSIGNMENT_STATUS_CHOICES = (
    (ASSIGNMENT_UNASSIGNED, 'Unassigned'),
    (ASSIGNMENT_PARTIAL, 'Partially assigned'),
    (ASSIGNMENT_FULL, 'Fully assigned'),
)

COMPLETION_NONE = 0
COMPLETION_HALF = 50
COMPLETION_FULL = 100

COMPLETION_CHOICES = (COMPLETION_NONE, COMPLETION_HALF, COMPLETION_FULL)

PROGRESS_LABELS = {
    COMPLETION_NONE: 'Not Started (0%)',
    COMPLETION_HALF: 'Partially Complete (50%)',
    COMPLETION_FULL: 'Fully Complete (100%)',
}

EVENT_CREATED = 'created'
EVENT_AMMC_ASSIGNED = 'ammc_assigned'
EVENT_NIA_ASSIGNED = 'nia_assigned'
EVENT_AMMC_REPORT = 'ammc_report_submitted'
EVENT_NIA_REPORT = 'nia_report_submitted'
EVENT_REPORTS_MERGED = 'reports_merged'
EVENT_CONFLICT_DETECTED = 'conflict_detected'
EVENT_CONFLICT_RESOLVED = 'conflict_resolved'
EVENT_COMPLETED = 'completed'

EVENT_CHOICES = (
    (EVENT_CREATED, 'Created'),
    (EVENT_AMMC_ASSIGNED, 'AMMC surveyor assigned'),
    (EVENT_NIA_ASSIGNED, 'NIA surveyor assigned'),
    (EVENT_AMMC_REPORT, 'AMMC report submitted'),
    (EVENT_NIA_REPORT, 'NIA report submitted'),
    (EVENT_REPORTS_MERGED, 'Reports merged'),
    (EVENT_CONFLICT_DETECTED, 'Conflict detected'),
    (EVENT_CONFLICT_RESOLVED, 'Conflict resolved'),
    (EVENT_COMPLETED, 'Completed'),
)

ASSIGNED_EVENTS = {ORG_AMMC: EVENT_AMMC_ASSIGNED, ORG_NIA: EVENT_NIA_ASSIGNED}
REPORT_EVENTS = {ORG_AMMC: EVENT_AMMC_REPORT, ORG_NIA: EVENT_NIA_REPORT}

PROCESSING_PENDING = 'pending'
PROCESSING_PROCESSING = 'processing'
PROCESSING_COMPLETED = 'completed'
PROCESSING_FAILED = 'failed'

PROCESSING_CHOICES = (
    (PROCESSING_PENDING, 'Pending'),
    (PROCESSING_PROCESSING, 'Processing'),
    (PROCESSING_COMPLETED, 'Completed'),
    (PROCESSING_FAILED, 'Failed'),
)

NOT_PROVIDED = 'Not provided'


def partner_of(organization: str) -> str:
    return ORG_NIA if organization == ORG_AMMC else ORG_AMMC
