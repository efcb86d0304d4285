"""
Dual-Native core unit tests
"""

import unittest
from .api import CatalogAPITests, ConformanceAPITests, GenericAPITests, ResourceAPITests
from .catalog import CatalogStoreTests
from .cli import StandaloneCLITests
from .conformance import ConformanceTests, EquivalenceTests
from .identity import BlockTests, CanonicalFormTests, ContentIdentityTests, LinkTests, ValidatorTests
from .misc import EventSinkTests, LoggerTests, SettingsTests, TimestampTests
from .persistence import HTTPResourceProviderTests, SQLResourceProviderTests, StorageTests
from .system import ConcurrencyTests, SystemTests


TEST_CLASSES = [
    BlockTests,
    CanonicalFormTests,
    CatalogAPITests,
    CatalogStoreTests,
    ConcurrencyTests,
    ConformanceAPITests,
    ConformanceTests,
    ContentIdentityTests,
    EquivalenceTests,
    EventSinkTests,
    GenericAPITests,
    HTTPResourceProviderTests,
    LinkTests,
    LoggerTests,
    ResourceAPITests,
    SQLResourceProviderTests,
    SettingsTests,
    StandaloneCLITests,
    StorageTests,
    SystemTests,
    TimestampTests,
    ValidatorTests,
]


def get_suite() -> unittest.TestSuite:
    suite = unittest.TestSuite()
    for cls in TEST_CLASSES:
        for fixture in filter(lambda f: f.startswith("test_"), dir(cls)):
            suite.addTest(cls(fixture))
    return suite
