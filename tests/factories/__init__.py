"""
Data factories for test data generation.

Factories use factory-boy to create realistic test data with sensible defaults.
All factories support async creation via create_async() method.

Usage:
    from tests.factories import UserFactory, AdminFactory

    # Create customer
    user = await UserFactory.create_async(db_session, email="custom@gmail.com")

    # Create admin with a trusted device
    admin = await AdminFactory.create_async(db_session, remembered_until=future)
"""

from tests.factories.user import UserFactory
from tests.factories.admin import AdminFactory

__all__ = [
    "UserFactory",
    "AdminFactory",
]
