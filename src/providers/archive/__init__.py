"""archive.org API client and metadata parsing."""

from src.providers.archive.archive_org_client import ArchiveOrgClient
from src.providers.archive.metadata_parser import parse_candidate, parse_show, parse_stats

__all__ = ["ArchiveOrgClient", "parse_candidate", "parse_show", "parse_stats"]
