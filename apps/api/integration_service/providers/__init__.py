from .channels import ChannelResult, NotificationServiceError, build_channels
from .email import EmailServiceError, EmailConfigError, get_email_provider
from .gitea import CommitResult, GiteaProvider, GiteaServiceError, get_gitea_provider
from .index import IndexConfigError, IndexServiceError, RecordIndex, get_record_index
from .moqui import MoquiProvider, MoquiServiceError, PropagationResult, SubStepResult, get_moqui_provider

__all__ = [
    "ChannelResult",
    "NotificationServiceError",
    "build_channels",
    "EmailServiceError",
    "EmailConfigError",
    "get_email_provider",
    "CommitResult",
    "GiteaProvider",
    "GiteaServiceError",
    "get_gitea_provider",
    "IndexConfigError",
    "IndexServiceError",
    "RecordIndex",
    "get_record_index",
    "MoquiProvider",
    "MoquiServiceError",
    "PropagationResult",
    "SubStepResult",
    "get_moqui_provider",
]
