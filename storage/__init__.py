"""
Storage Module
Curation records and feedback aggregates
"""
from .records import InMemoryRecordStore, RecordStore
from .feedback import FeedbackAggregateSource, InMemoryFeedbackLedger

__all__ = [
    "InMemoryRecordStore",
    "RecordStore",
    "FeedbackAggregateSource",
    "InMemoryFeedbackLedger",
]
