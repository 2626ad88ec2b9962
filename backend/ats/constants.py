JOB_STATUSES = ("draft", "active", "closed")

FIELD_TYPES = (
    "short_text",
    "long_text",
    "single_choice",
    "multi_choice",
    "dropdown",
    "file",
    "rating",
    "date",
    "time",
)
CHOICE_FIELD_TYPES = ("single_choice", "multi_choice", "dropdown")

# Pipeline order; kanban buckets and stats follow it.
PIPELINE_STAGES = ("applied", "screening", "interview", "assessment", "offer", "hired", "rejected")
TERMINAL_STAGES = ("hired", "rejected")
INITIAL_STAGE = "applied"

CONTACT_FIELDS = ("name", "email", "phone", "country", "city")

ADMIN_ROLES = ("admin", "super_admin")
