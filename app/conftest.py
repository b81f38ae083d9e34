"""
Project-wide pytest configuration.

Payments fixtures (gateway fake, factories, sample payments) live in
payments/tests/conftest.py and are re-exported by the subpackage conftests.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    django.setup()

    from django.conf import settings

    # Tasks run inline; there is no broker under test
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


E2E_FILES = {"test_integration.py"}

UNIT_FILES = {
    "test_validators.py",
    "test_encryption.py",
    "test_exceptions.py",
    "test_refund_policy.py",
    "test_earnings_split.py",
    "test_stripe_adapter.py",
    "test_state_transitions.py",
    "test_service_result.py",
}


def pytest_collection_modifyitems(items):
    """
    Mark each test unit, integration or e2e by its file name.

    Anything not listed is integration, since most tests here hit the
    database. An explicit marker on the test wins.
    """
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration", "e2e"}:
            continue

        filename = os.path.basename(str(item.fspath))
        if filename in E2E_FILES:
            item.add_marker(pytest.mark.e2e)
        elif filename in UNIT_FILES:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
