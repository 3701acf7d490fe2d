"""Content-addressed trace of agent code changes."""

from .hashing import compute_content_hash, extract_block, hash_file
from .logger import TraceLogger, build_record, read_trace_log, summarize_traces
from .mutation import MutationType, classify_mutation
from .records import Contributor, Conversation, FileTrace, LineRange, Related, TraceRecord
from .revision import get_revision_id

__all__ = [
    "compute_content_hash",
    "extract_block",
    "hash_file",
    "TraceLogger",
    "build_record",
    "read_trace_log",
    "summarize_traces",
    "MutationType",
    "classify_mutation",
    "TraceRecord",
    "FileTrace",
    "Conversation",
    "Contributor",
    "LineRange",
    "Related",
    "get_revision_id",
]
