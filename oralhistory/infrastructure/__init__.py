"""Infrastructure layer exports."""

from .collaborators import Analyzer, Encryptor, SimulatedAnalyzer, SimulatedEncryptor
from .http_ledger import HttpLedgerClient
from .index import ConditionalIndexManager, IndexManager
from .ledger import ConditionalLedgerClient, InMemoryLedger, LedgerClient, supports_conditional_put
from .records import LedgerRecordStore, RecordRepository

__all__ = [
    "Analyzer",
    "ConditionalIndexManager",
    "ConditionalLedgerClient",
    "Encryptor",
    "HttpLedgerClient",
    "InMemoryLedger",
    "IndexManager",
    "LedgerClient",
    "LedgerRecordStore",
    "RecordRepository",
    "SimulatedAnalyzer",
    "SimulatedEncryptor",
    "supports_conditional_put",
]
