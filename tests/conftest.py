"""
Shared fixtures: a Flask app on in-memory SQLite and a fake People API.
"""
import copy
from datetime import datetime

import pytest

import tribu.people.client as people_client_module
from tribu import create_app
from tribu.config import Config
from tribu.models import Contact, ContactGroup, db
from tribu.people.api import PeopleAPIError
from tribu.services.contact_service import clear_token_cache

NOW = datetime(2025, 3, 10, 12, 0, 0)
WEBAPP_URL = "https://tribu.example/app"


class TestConfig(Config):
    ENV = "test"
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    TRIBU_WEBAPP_URL = WEBAPP_URL
    SYNC_BATCH_PER_TICK = 20
    SYNC_MAX_ATTEMPTS = 8
    SYNC_BACKOFF_MINUTES = [0, 1, 2, 5, 10, 20, 40, 80]
    SYNC_LOCK_TIMEOUT = 1
    LOG_FILE = None


class FakePeopleAPI:
    """In-memory stand-in for PeopleAPI that records every call."""

    def __init__(self):
        self.records = {}
        self.get_calls = []
        self.update_calls = []
        self.group_calls = []
        self.get_error = None
        self.update_error = None
        self.group_error = None
        self._version = 0

    def add_person(self, rn, update_time="2025-01-01T00:00:00.000Z", user_defined=None, events=None,
                   memberships=None, birthdays=None, sources=None):
        if sources is None:
            sources = [
                {"type": "PROFILE", "id": "p1", "updateTime": "2025-02-02T00:00:00.000Z"},
                {"type": "CONTACT", "id": "c1", "updateTime": update_time},
            ]
        self.records[rn] = {
            "resourceName": rn,
            "etag": f"etag-{rn}-0",
            "metadata": {"sources": sources},
            "userDefined": list(user_defined or []),
            "events": list(events or []),
            "memberships": list(memberships or []),
            "birthdays": list(birthdays or []),
        }
        return self.records[rn]

    def get_person(self, resource_name, person_fields):
        self.get_calls.append((resource_name, person_fields))
        if self.get_error is not None:
            raise self.get_error
        record = self.records.get(resource_name)
        if record is None:
            raise PeopleAPIError(f"404 from People API: {resource_name}", status_code=404)

        out = {"resourceName": resource_name, "etag": record["etag"]}
        for name in person_fields.split(","):
            if name in record:
                out[name] = copy.deepcopy(record[name])
        return out

    def update_contact(self, resource_name, person, update_person_fields):
        self.update_calls.append((resource_name, copy.deepcopy(person), update_person_fields))
        if self.update_error is not None:
            raise self.update_error
        record = self.records[resource_name]
        if person.get("etag") != record["etag"]:
            raise PeopleAPIError("400 FAILED_PRECONDITION: etag mismatch", status_code=400)

        for name in update_person_fields.split(","):
            record[name] = copy.deepcopy(person.get(name, []))
        self._version += 1
        record["etag"] = f"etag-{resource_name}-{self._version}"
        for source in record["metadata"]["sources"]:
            if source.get("type") == "CONTACT":
                source["updateTime"] = f"2099-01-01T00:00:{self._version:02d}.000Z"
        return copy.deepcopy(record)

    def modify_group_members(self, group_resource_name, add=None, remove=None):
        self.group_calls.append((group_resource_name, tuple(add or ()), tuple(remove or ())))
        if self.group_error is not None:
            raise self.group_error
        return {}


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def people():
    return FakePeopleAPI()


@pytest.fixture(autouse=True)
def reset_shared_state():
    clear_token_cache()
    people_client_module._client = None
    yield
    clear_token_cache()
    people_client_module._client = None


@pytest.fixture
def make_contact(app):
    def _make(contact_id="C1", people_rn="people/c1", name="Ana", **fields):
        contact = Contact(contact_id=contact_id, people_rn=people_rn, name=name, **fields)
        db.session.add(contact)
        db.session.commit()
        return contact
    return _make


@pytest.fixture
def managed_groups(app):
    """Register every managed category group as contactGroups/g<NN>."""
    from tribu.outbox.groups import Category

    groups = {}
    for category in Category:
        rn = f"contactGroups/g{category.group_name[:2]}"
        db.session.add(ContactGroup(name=category.group_name, resource_name=rn))
        groups[category] = rn
    db.session.commit()
    return groups
