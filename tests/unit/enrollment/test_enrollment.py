# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Tests for study enrollment.

Covers the consent state machine, the arm assignment, the delayed arm's
two-week suppression and the end of the study period.
"""

from __future__ import annotations

import random

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from saltstudy.config.settings import TWO_WEEKS, YEAR
from saltstudy.enrollment import (
    UUID_FILE,
    EnrollmentManager,
    EnrollmentRecord,
    ParticipationStatus,
    StateKey,
)
from saltstudy.exceptions import EnrollmentError, StorageUnavailableError


pytestmark = [pytest.mark.unit]

T0 = 1_700_000_000
DAY = 86_400


class DictState:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def update(self, key: str, value: Any | None) -> None:
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value


class LoggingSetting:
    def __init__(self, value: bool = False) -> None:
        self.value = value

    def get(self) -> bool:
        return self.value

    def set(self, value: bool) -> None:
        self.value = value


def coin(value: float) -> random.Random:
    rng = MagicMock(spec=random.Random)
    rng.random.return_value = value
    return rng


@pytest.fixture
def state() -> DictState:
    return DictState()


@pytest.fixture
def logging_setting() -> LoggingSetting:
    return LoggingSetting()


@pytest.fixture
def make_manager(state: DictState, logging_setting: LoggingSetting, tmp_path: Path):
    def factory(*, delayed: bool = False, state_store: DictState | None = None) -> EnrollmentManager:
        return EnrollmentManager(
            state_store or state,
            tmp_path / "storage",
            get_logging_setting=logging_setting.get,
            set_logging_setting=logging_setting.set,
            rng=coin(0.1 if delayed else 0.9),
        )

    return factory


class TestInitialState:
    def test_fresh_install_needs_consent(self, make_manager) -> None:
        manager = make_manager()

        assert manager.needs_consent
        assert not manager.is_accepted
        assert not manager.is_declined
        assert manager.user_id is None
        assert not manager.is_capture_enabled
        # nobody is suppressed before enrolling
        assert manager.is_feature_currently_enabled(T0)
        assert manager.elapsed(T0) == 0.0


class TestAccept:
    """Test consent and arm assignment."""

    def test_accept_assigns_id_and_arm(self, make_manager, state: DictState, logging_setting) -> None:
        manager = make_manager(delayed=True)
        record = manager.accept(T0)

        assert record.participation_status is ParticipationStatus.ACCEPTED
        assert record.user_id is not None
        assert len(record.user_id) == 32
        int(record.user_id, 16)
        assert record.study_arm is True
        assert record.visualization_enabled is False
        assert record.enrollment_start == T0
        assert logging_setting.value is True
        assert manager.is_capture_enabled
        assert state.data[StateKey.PARTICIPATION] == "accepted"
        assert state.data[StateKey.USER_ID] == record.user_id
        assert state.data[StateKey.STUDY_ARM] is True
        assert state.data[StateKey.VISUALIZATION_ENABLED] is False
        assert state.data[StateKey.START_DATE] == T0

    def test_immediate_arm(self, make_manager) -> None:
        manager = make_manager(delayed=False)
        record = manager.accept(T0)

        assert record.study_arm is False
        assert not manager.is_study_arm_active
        assert manager.is_feature_currently_enabled(T0 + 1)

    def test_user_id_written_to_uuid_file(self, make_manager, tmp_path: Path) -> None:
        manager = make_manager()
        record = manager.accept(T0)

        uuid_file = tmp_path / "storage" / UUID_FILE
        assert uuid_file.read_text(encoding="utf-8").splitlines() == [record.user_id]

    def test_accept_twice_keeps_assignment(self, make_manager) -> None:
        manager = make_manager(delayed=True)
        first = manager.accept(T0)
        second = manager.accept(T0 + DAY)

        assert second == first

    def test_assignment_survives_reactivation(self, make_manager, state: DictState) -> None:
        first = make_manager(delayed=True).accept(T0)

        # a later activation whose coin would land on the other arm
        reloaded = make_manager(delayed=False, state_store=state)

        assert reloaded.user_id == first.user_id
        assert reloaded.record.study_arm is True
        assert reloaded.record.enrollment_start == T0

    def test_accept_after_decline_raises(self, make_manager) -> None:
        manager = make_manager()
        manager.decline()

        with pytest.raises(EnrollmentError):
            manager.accept(T0)

    def test_unwritable_storage(self, state: DictState, logging_setting, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        manager = EnrollmentManager(
            state,
            blocker,
            get_logging_setting=logging_setting.get,
            set_logging_setting=logging_setting.set,
        )

        with pytest.raises(StorageUnavailableError):
            manager.accept(T0)
        assert state.get(StateKey.PARTICIPATION) is None


class TestDecline:
    def test_decline_stores_nothing_else(self, make_manager, state: DictState) -> None:
        manager = make_manager()
        record = manager.decline()

        assert record.participation_status is ParticipationStatus.DECLINED
        assert manager.is_declined
        assert not manager.needs_consent
        assert state.data == {StateKey.PARTICIPATION: "declined"}

    def test_decline_is_terminal(self, make_manager) -> None:
        manager = make_manager()
        manager.decline()

        with pytest.raises(EnrollmentError):
            manager.decline()


class TestDelayedVisualization:
    """Test the two-week suppression of the delayed arm."""

    def test_suppressed_until_window_passes(self, make_manager) -> None:
        manager = make_manager(delayed=True)
        manager.accept(T0)

        assert manager.is_study_arm_active
        assert not manager.is_feature_currently_enabled(T0 + DAY)
        assert not manager.is_feature_currently_enabled(T0 + TWO_WEEKS)
        assert manager.is_feature_currently_enabled(T0 + 15 * DAY)

    def test_reenable_is_permanent(self, make_manager, state: DictState) -> None:
        manager = make_manager(delayed=True)
        manager.accept(T0)

        assert not manager.check_reenable(T0 + DAY)
        assert manager.check_reenable(T0 + 15 * DAY)
        assert state.data[StateKey.VISUALIZATION_ENABLED] is True
        assert not manager.check_reenable(T0 + 16 * DAY)

        reloaded = make_manager(state_store=state)
        assert not reloaded.record.is_suppressed
        # still in the delayed arm; only the suppression was lifted
        assert reloaded.is_study_arm_active

    def test_immediate_arm_never_reenabled(self, make_manager) -> None:
        manager = make_manager(delayed=False)
        manager.accept(T0)

        assert not manager.check_reenable(T0 + 15 * DAY)


class TestExpiry:
    """Test the end of the study period."""

    def test_not_expired_within_year(self, make_manager) -> None:
        manager = make_manager()
        manager.accept(T0)

        assert not manager.check_expiry(T0 + YEAR)
        assert manager.is_accepted

    def test_expired_after_year(self, make_manager, state: DictState, logging_setting) -> None:
        manager = make_manager(delayed=True)
        manager.accept(T0)

        assert manager.check_expiry(T0 + 366 * DAY)
        assert manager.needs_consent
        assert manager.user_id is None
        assert logging_setting.value is False
        assert not manager.is_capture_enabled
        for key in (
            StateKey.PARTICIPATION,
            StateKey.USER_ID,
            StateKey.STUDY_ARM,
            StateKey.START_DATE,
        ):
            assert key not in state.data

    def test_expiry_needs_enrollment(self, make_manager) -> None:
        assert not make_manager().check_expiry(T0 + 10 * YEAR)


class TestLoad:
    """Test reading records written by this and earlier releases."""

    def test_legacy_boolean_participation(self, make_manager) -> None:
        state = DictState(
            {"participation": True, "uuid": "ab" * 16, "startDate": T0, "enableRevis": False}
        )
        manager = make_manager(state_store=state)

        assert manager.is_accepted
        # the arm is recovered from the stored visualization flag
        assert manager.is_study_arm_active

    def test_legacy_declined(self, make_manager) -> None:
        manager = make_manager(state_store=DictState({"participation": False}))
        assert manager.is_declined

    def test_leftovers_ignored_until_accepted(self, make_manager) -> None:
        state = DictState({"uuid": "ab" * 16, "studyArm": True, "startDate": T0})
        manager = make_manager(state_store=state)

        assert manager.needs_consent
        assert manager.user_id is None

    def test_accepted_without_id_is_inconsistent(self, make_manager) -> None:
        state = DictState({"participation": "accepted", "studyArm": False, "startDate": T0})

        with pytest.raises(EnrollmentError):
            make_manager(state_store=state)

    def test_unknown_participation_value(self, make_manager) -> None:
        with pytest.raises(EnrollmentError):
            make_manager(state_store=DictState({"participation": "maybe"}))

    def test_record_invariant(self) -> None:
        with pytest.raises(ValueError):
            EnrollmentRecord(participation_status=ParticipationStatus.UNSET, user_id="ab" * 16)


class TestLoggingSettingMigration:
    def test_migrates_once(self, make_manager, logging_setting) -> None:
        state = DictState(
            {"participation": "accepted", "uuid": "ab" * 16, "studyArm": False, "startDate": T0}
        )
        manager = make_manager(state_store=state)

        assert not manager.is_capture_enabled
        assert manager.migrate_logging_setting()
        assert logging_setting.value is True
        assert manager.is_capture_enabled
        assert state.data["globalEnable"] is True

        logging_setting.value = False
        assert not make_manager(state_store=state).migrate_logging_setting()
        assert logging_setting.value is False

    def test_not_enrolled(self, make_manager, logging_setting) -> None:
        assert not make_manager().migrate_logging_setting()
        assert logging_setting.value is False


class TestSurvey:
    def test_record_survey(self, make_manager, state: DictState) -> None:
        manager = make_manager()
        manager.accept(T0)
        manager.record_survey("agree")

        assert manager.record.survey_response == "agree"
        assert state.data["survey"] == "agree"


def test_elapsed_counts_from_enrollment(make_manager) -> None:
    manager = make_manager()
    manager.accept(T0)

    assert manager.elapsed(T0 + 90.5) == 90.5
    assert manager.elapsed(T0 - 10) == 0.0
