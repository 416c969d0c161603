from .checkmarx import CheckmarxClient, ScanState, archive_source

__all__ = ["CheckmarxClient", "ScanState", "archive_source"]
