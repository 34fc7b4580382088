"""
Gather core unit tests
"""

import unittest
from .test_api import APITests, ExplicitSettingsAPITests
from .test_cli import StandaloneCLITests
from .test_misc import (
    AuthHelperTests, DependencyTests, GeoTests, LoggingTests, SchemaTests, SettingsTests, VersioningTests
)
from .test_persistence import (
    AuthPersistenceTests, DatabaseRestrictionTests, DatabaseSetupTests, DatabaseUsabilityTests
)


TEST_CLASSES = [
    APITests,
    AuthHelperTests,
    AuthPersistenceTests,
    DatabaseRestrictionTests,
    DatabaseSetupTests,
    DatabaseUsabilityTests,
    DependencyTests,
    ExplicitSettingsAPITests,
    GeoTests,
    LoggingTests,
    SchemaTests,
    SettingsTests,
    StandaloneCLITests,
    VersioningTests,
]


def get_suite() -> unittest.TestSuite:
    suite = unittest.TestSuite()
    for cls in TEST_CLASSES:
        for fixture in filter(lambda f: f.startswith("test_"), dir(cls)):
            suite.addTest(cls(fixture))
    return suite
