"""
Gather database unit tests
"""

import os
import time
import datetime
import unittest as _unittest
from unittest import mock

import sqlalchemy
import sqlalchemy.exc
import sqlalchemy.orm

from gather_core.api import auth
from gather_core.persistence import database, models

from . import utils


class DatabaseUsabilityTests(utils.BasePersistenceTests):
    def test_create_users(self):
        users = self.get_sample_users()
        self.session.add_all(users)
        self.session.commit()

        self.assertEqual(len(users), self.session.query(models.User).count())
        self.assertEqual(3, self.session.query(models.User).filter_by(active=True).count())
        alice = self.session.query(models.User).filter_by(name="alice").first()
        self.assertEqual(users[0].id, alice.id)
        self.assertEqual([], alice.events)
        self.assertEqual([], alice.attendances)

        schema = alice.schema
        self.assertEqual("alice", schema.name)
        self.assertIsInstance(schema.created, int)
        self.assertIsInstance(schema.modified, int)

    @_unittest.skipUnless(hasattr(time, "tzset"), "Changing the local time zone is not supported")
    def test_timestamps_independent_of_local_time_zone(self):
        self.addCleanup(time.tzset)
        with mock.patch.dict(os.environ, {"TZ": "America/New_York"}):
            time.tzset()
            owner = self.get_sample_users()[0]
            event = models.Event(name="Party", lat=0, lon=0, started_at=datetime.datetime(2026, 1, 1), owner=owner)
            self.session.add_all([owner, event, models.Attendance(user=owner, event=event)])
            self.session.commit()

            now = time.time()
            for schema in [owner.schema, event.schema, event.attendances[0].schema]:
                self.assertLess(abs(schema.created - now), 60, schema)
            self.assertLess(abs(owner.schema.modified - now), 60)
            self.assertLess(abs(event.schema.modified - now), 60)

    def test_event_schema(self):
        owner, guest, *_ = self.get_sample_users()
        self.session.add_all([owner, guest])
        self.session.commit()

        event = models.Event(
            name="Concert",
            lat=52.52,
            lon=13.405,
            started_at=datetime.datetime(2026, 7, 1, 19, 30),
            owner=owner
        )
        self.session.add(event)
        self.session.commit()
        self.session.add_all([
            models.Attendance(user=guest, event=event),
            models.Attendance(user=owner, event=event)
        ])
        self.session.commit()

        schema = event.schema
        self.assertEqual(owner.id, schema.owner_id)
        self.assertEqual(sorted([owner.id, guest.id]), schema.attendees)
        self.assertEqual(datetime.timezone.utc, schema.started_at.tzinfo)
        self.assertEqual(datetime.datetime(2026, 7, 1, 19, 30, tzinfo=datetime.timezone.utc), schema.started_at)
        self.assertIsNone(schema.ended_at)
        self.assertIsNone(schema.address)
        self.assertEqual([event], owner.events)

    def test_delete_event_with_attendances(self):
        owner, guest, *_ = self.get_sample_users()
        event = models.Event(name="Party", lat=0, lon=0, started_at=datetime.datetime(2026, 1, 1), owner=owner)
        self.session.add_all([owner, guest, event, models.Attendance(user=guest, event=event)])
        self.session.commit()
        self.assertEqual(1, self.session.query(models.Attendance).count())

        self.session.delete(event)
        self.session.commit()
        self.assertEqual(0, self.session.query(models.Attendance).count())
        self.assertEqual(0, self.session.query(models.Event).count())
        self.assertEqual([], guest.attendances)
        self.assertEqual(2, self.session.query(models.User).count())


class DatabaseRestrictionTests(utils.BasePersistenceTests):
    def test_unique_user_names_and_tokens(self):
        self.session.add(models.User(name="alice", auth_token_digest="a" * 64))
        self.session.commit()

        self.session.add(models.User(name="alice", auth_token_digest="b" * 64))
        with self.assertRaises(sqlalchemy.exc.IntegrityError):
            self.session.commit()
        self.session.rollback()

        self.session.add(models.User(name="bob", auth_token_digest="a" * 64))
        with self.assertRaises(sqlalchemy.exc.IntegrityError):
            self.session.commit()
        self.session.rollback()

        self.session.add_all([
            models.User(auth_token_digest="c" * 64),
            models.User(auth_token_digest="d" * 64)
        ])
        self.session.commit()
        self.assertEqual(3, self.session.query(models.User).count())

    def test_single_attendance_per_event(self):
        owner, guest, *_ = self.get_sample_users()
        event = models.Event(name="Party", lat=0, lon=0, started_at=datetime.datetime(2026, 1, 1), owner=owner)
        self.session.add_all([owner, guest, event, models.Attendance(user=guest, event=event)])
        self.session.commit()

        self.session.add(models.Attendance(user_id=guest.id, event_id=event.id))
        with self.assertRaises(sqlalchemy.exc.IntegrityError):
            self.session.commit()
        self.session.rollback()

        self.session.add(models.Attendance(user_id=owner.id, event_id=event.id))
        self.session.commit()
        self.assertEqual(2, self.session.query(models.Attendance).count())

    def test_event_constraints(self):
        owner = self.get_sample_users()[0]
        self.session.add(owner)
        self.session.commit()

        for kwargs in [
            {"lat": 90.5, "lon": 0},
            {"lat": 0, "lon": -180.5},
            {"lat": 0, "lon": 0, "ended_at": datetime.datetime(2025, 12, 31)}
        ]:
            self.session.add(models.Event(
                name="Invalid",
                started_at=datetime.datetime(2026, 1, 1),
                owner_id=owner.id,
                **kwargs
            ))
            with self.assertRaises(sqlalchemy.exc.IntegrityError):
                self.session.commit()
            self.session.rollback()

        self.session.add(models.Event(name="Missing owner", lat=0, lon=0, started_at=datetime.datetime(2026, 1, 1)))
        with self.assertRaises(sqlalchemy.exc.IntegrityError):
            self.session.commit()
        self.session.rollback()
        self.assertEqual(0, self.session.query(models.Event).count())


class AuthPersistenceTests(utils.BasePersistenceTests):
    def test_tokens_are_stored_as_digest(self):
        user, token = auth.create_user(self.session, "alice", nbytes=16)
        self.assertEqual(auth.digest_token(token), user.auth_token_digest)
        self.assertNotEqual(token, user.auth_token_digest)
        self.assertEqual(0, self.session.query(models.User).filter_by(auth_token_digest=token).count())

        self.assertEqual(user.id, auth.find_user_by_token(token, self.session).id)
        self.assertIsNone(auth.find_user_by_token(token + "x", self.session))
        self.assertIsNone(auth.find_user_by_token("", self.session))

        user.active = False
        self.session.commit()
        self.assertIsNone(auth.find_user_by_token(token, self.session))

    def test_tokens_are_unique(self):
        tokens = {auth.create_user(self.session)[1] for _ in range(16)}
        self.assertEqual(16, len(tokens))
        self.assertEqual(16, self.session.query(models.User).count())


class DatabaseSetupTests(utils.BaseTest):
    def tearDown(self) -> None:
        engine = database.get_engine()
        engine.dispose()
        super().tearDown()

    def test_init_and_sessions(self):
        database.PRINT_SQLITE_WARNING = False
        database.init(self.database_url, echo=False)
        tables = sqlalchemy.inspect(database.get_engine()).get_table_names()
        for table in ["users", "events", "attendances"]:
            self.assertIn(table, tables)

        with database.get_new_session() as session:
            auth.create_user(session, "alice")
        with database.get_new_session() as session:
            self.assertEqual(1, session.query(models.User).count())

    def test_migrations(self):
        database.PRINT_SQLITE_WARNING = False
        if self.database_url == "sqlite://":
            self.skipTest("Migrations can't be applied to an in-memory database")

        database.run_migrations(self.database_url)
        engine = sqlalchemy.create_engine(self.database_url)
        tables = sqlalchemy.inspect(engine).get_table_names()
        engine.dispose()
        for table in ["alembic_version", "users", "events", "attendances"]:
            self.assertIn(table, tables)

        database.run_migrations(self.database_url)
        database.init(self.database_url, echo=False, create_all=False)
        with database.get_new_session() as session:
            auth.create_user(session, "bob")
            self.assertEqual(1, session.query(models.User).count())

    def test_migrations_adopt_existing_tables(self):
        database.PRINT_SQLITE_WARNING = False
        if self.database_url == "sqlite://":
            self.skipTest("Migrations can't be applied to an in-memory database")

        database.init(self.database_url, echo=False, create_all=True)
        database.get_engine().dispose()
        database.run_migrations(self.database_url)

        engine = sqlalchemy.create_engine(self.database_url)
        with engine.connect() as connection:
            revisions = connection.execute(sqlalchemy.text("SELECT version_num FROM alembic_version")).all()
        engine.dispose()
        self.assertEqual(1, len(revisions))


if __name__ == '__main__':
    _unittest.main()
