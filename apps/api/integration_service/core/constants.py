"""Shared service constants."""

# Pull requests opened for a submission are titled "<prefix><fullName>"; the merge
# webhook handler relies on this prefix to recognise contact PRs.
CONTACT_PR_TITLE_PREFIX = "Add Contact: "

CONTACT_DATA_DIR = "data/contacts"
SUBMISSION_METADATA_DIR = "metadata/submissions"

BRANCH_TYPE_CONTACT = "contact"
BRANCH_SHORT_ID_LENGTH = 8

DEFAULT_ACTOR = "system"
DEFAULT_SUBMITTER = "form-user"
DEFAULT_SOURCE = "form"

MAX_PAGE_SIZE = 100
# OpenSearch index.max_result_window default; deeper pages are rejected by the cluster
MAX_RESULT_WINDOW = 10000
MAX_NOTIFICATIONS = 1000
