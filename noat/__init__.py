"""noat: publish markdown posts from a git repository to Bluesky.

Committed posts are the source of truth. A post is published once, after
which its ``AT_URL`` frontmatter field holds the Bluesky post URL.
"""

__version__ = "0.1.0"

from noat.config import load_config, NoatConfig
from noat.drafts import Draft, DraftBuilder, MARKER_FIELD
from noat.factory import build_publisher
from noat.posse import PossePublisher, PublishSummary

__all__ = [
    "load_config",
    "NoatConfig",
    "Draft",
    "DraftBuilder",
    "MARKER_FIELD",
    "build_publisher",
    "PossePublisher",
    "PublishSummary",
]
