# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Study enrollment: consent, arm assignment, and the time-gated visualization.

State machine::

    Unset --accept--> Accepted
    Unset --decline--> Declined
    Accepted --(study period over)--> Unset

An accepted installation is assigned to one of two arms by a fair coin. In the
delayed arm the error visualization stays off for the first two weeks after
enrollment and is then switched on for good; in the other arm it is on from
the start. Capture and logging run in both arms; only the visualization is
gated.
"""

from __future__ import annotations

import logging
import random
import secrets

from collections.abc import Callable
from enum import StrEnum
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, model_validator

from saltstudy.config.settings import TWO_WEEKS, YEAR
from saltstudy.exceptions import EnrollmentError, StorageUnavailableError
from saltstudy.host import StateStore


logger = logging.getLogger(__name__)

UUID_FILE: Final[str] = "uuid.txt"


class ParticipationStatus(StrEnum):
    UNSET = "unset"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class StateKey(StrEnum):
    """Keys of the enrollment record in the host's persistent state."""

    PARTICIPATION = "participation"
    USER_ID = "uuid"
    STUDY_ARM = "studyArm"
    VISUALIZATION_ENABLED = "enableRevis"
    START_DATE = "startDate"
    LOGGING_MIGRATED = "globalEnable"
    SURVEY = "survey"


class EnrollmentRecord(BaseModel):
    """Persisted enrollment state of one installation."""

    model_config = ConfigDict(frozen=True)

    participation_status: ParticipationStatus = ParticipationStatus.UNSET
    user_id: str | None = None
    study_arm: bool | None = None
    visualization_enabled: bool = True
    enrollment_start: int | None = None
    logging_migrated: bool = False
    survey_response: str | None = None

    @model_validator(mode="after")
    def _accepted_iff_assigned(self) -> EnrollmentRecord:
        accepted = self.participation_status is ParticipationStatus.ACCEPTED
        assigned = (
            self.user_id is not None
            and self.study_arm is not None
            and self.enrollment_start is not None
        )
        if accepted != assigned:
            raise ValueError("user_id, study_arm and enrollment_start are set only when accepted")
        return self

    @property
    def is_suppressed(self) -> bool:
        """The visualization is held back for the delayed arm."""
        return not self.visualization_enabled


def _participation_from_state(value: object) -> ParticipationStatus:
    # True/False are the values stored by earlier releases
    match value:
        case None:
            return ParticipationStatus.UNSET
        case True:
            return ParticipationStatus.ACCEPTED
        case False:
            return ParticipationStatus.DECLINED
        case str():
            return ParticipationStatus(value)
        case _:
            raise ValueError(f"unexpected participation value {value!r}")


class EnrollmentManager:
    """Reads and transitions the enrollment record kept in a `StateStore`.

    Time is passed in explicitly as Unix seconds so callers (and tests) decide
    what "now" is.
    """

    def __init__(
        self,
        state: StateStore,
        storage_dir: Path,
        *,
        get_logging_setting: Callable[[], bool],
        set_logging_setting: Callable[[bool], None],
        rng: random.Random | None = None,
        reenable_window: int = TWO_WEEKS,
        study_period: int = YEAR,
    ) -> None:
        self._state = state
        self._storage_dir = storage_dir
        self._get_logging_setting = get_logging_setting
        self._set_logging_setting = set_logging_setting
        self._rng = rng or random.SystemRandom()
        self.reenable_window = reenable_window
        self.study_period = study_period
        self.record = self.load()

    def load(self) -> EnrollmentRecord:
        """Read the record from the state store.

        Raises:
            EnrollmentError: If the stored values are inconsistent.
        """
        try:
            arm = self._state.get(StateKey.STUDY_ARM)
            visualization = self._state.get(StateKey.VISUALIZATION_ENABLED)
            status = _participation_from_state(self._state.get(StateKey.PARTICIPATION))
            accepted = status is ParticipationStatus.ACCEPTED
            if accepted and arm is None and visualization is not None:
                # records written before the arm was stored separately
                arm = not visualization
            record = EnrollmentRecord(
                participation_status=status,
                # leftovers of an interrupted accept are ignored until consent is given
                user_id=self._state.get(StateKey.USER_ID) if accepted else None,
                study_arm=arm if accepted else None,
                visualization_enabled=True if visualization is None else bool(visualization),
                enrollment_start=self._state.get(StateKey.START_DATE) if accepted else None,
                logging_migrated=bool(self._state.get(StateKey.LOGGING_MIGRATED)),
                survey_response=self._state.get(StateKey.SURVEY),
            )
        except ValueError as e:
            raise EnrollmentError(
                "The saved enrollment record is inconsistent",
                details={"error": str(e)},
                suggestions=["Reset the study state to be asked for consent again"],
            ) from e
        self.record = record
        return record

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def accept(self, now: int) -> EnrollmentRecord:
        """Record consent: assign an id and a study arm, start the clock.

        Accepting twice keeps the first assignment.

        Raises:
            StorageUnavailableError: If the record cannot be persisted.
        """
        if self.record.participation_status is ParticipationStatus.ACCEPTED:
            logger.debug("Consent already recorded; keeping the existing assignment")
            return self.record
        if self.record.participation_status is ParticipationStatus.DECLINED:
            raise EnrollmentError(
                "Consent was declined on this installation",
                suggestions=["Reset the study state to be asked for consent again"],
            )

        user_id = secrets.token_hex(16)
        delayed_arm = self._rng.random() < 0.5
        record = EnrollmentRecord(
            participation_status=ParticipationStatus.ACCEPTED,
            user_id=user_id,
            study_arm=delayed_arm,
            visualization_enabled=not delayed_arm,
            enrollment_start=now,
            logging_migrated=True,
            survey_response=self.record.survey_response,
        )
        self._issue_user_id(user_id)
        self._write(
            {
                StateKey.USER_ID: user_id,
                StateKey.STUDY_ARM: delayed_arm,
                StateKey.VISUALIZATION_ENABLED: not delayed_arm,
                StateKey.START_DATE: now,
                StateKey.LOGGING_MIGRATED: True,
                StateKey.PARTICIPATION: ParticipationStatus.ACCEPTED.value,
            }
        )
        self._set_logging_setting(True)
        self.record = record
        logger.info("Enrolled in the study (delayed visualization arm: %s)", delayed_arm)
        return record

    def decline(self) -> EnrollmentRecord:
        """Record that the user declined. Nothing else is stored."""
        if self.record.participation_status is not ParticipationStatus.UNSET:
            raise EnrollmentError(
                "Consent has already been answered",
                details={"status": self.record.participation_status.value},
            )
        self._write({StateKey.PARTICIPATION: ParticipationStatus.DECLINED.value})
        self.record = self.record.model_copy(
            update={"participation_status": ParticipationStatus.DECLINED}
        )
        return self.record

    def check_expiry(self, now: int) -> bool:
        """End the study for this installation once the study period is over.

        Returns:
            True if the record was reset to unset.
        """
        start = self.record.enrollment_start
        if not self.is_accepted or start is None or now <= start + self.study_period:
            return False
        self._set_logging_setting(False)
        self._write(
            {
                StateKey.PARTICIPATION: None,
                StateKey.USER_ID: None,
                StateKey.STUDY_ARM: None,
                StateKey.START_DATE: None,
                StateKey.VISUALIZATION_ENABLED: None,
            }
        )
        self.record = EnrollmentRecord(
            logging_migrated=self.record.logging_migrated,
            survey_response=self.record.survey_response,
        )
        logger.info("Study period has ended; logging disabled")
        return True

    def check_reenable(self, now: int) -> bool:
        """Lift the delayed arm's suppression once the re-enable window has passed.

        Returns:
            True if the suppression was lifted by this call.
        """
        start = self.record.enrollment_start
        if not self.is_accepted or not self.record.is_suppressed or start is None:
            return False
        if now <= start + self.reenable_window:
            return False
        self._write({StateKey.VISUALIZATION_ENABLED: True})
        self.record = self.record.model_copy(update={"visualization_enabled": True})
        logger.info("Visualization re-enabled for the delayed study arm")
        return True

    def migrate_logging_setting(self) -> bool:
        """Turn logging on once for participants who enrolled before the setting existed."""
        if not self.is_accepted or self.record.logging_migrated:
            return False
        self._set_logging_setting(True)
        self._write({StateKey.LOGGING_MIGRATED: True})
        self.record = self.record.model_copy(update={"logging_migrated": True})
        return True

    def record_survey(self, response: str) -> None:
        self._write({StateKey.SURVEY: response})
        self.record = self.record.model_copy(update={"survey_response": response})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_accepted(self) -> bool:
        return self.record.participation_status is ParticipationStatus.ACCEPTED

    @property
    def is_declined(self) -> bool:
        return self.record.participation_status is ParticipationStatus.DECLINED

    @property
    def needs_consent(self) -> bool:
        return self.record.participation_status is ParticipationStatus.UNSET

    @property
    def is_study_arm_active(self) -> bool:
        """True when enrolled in the delayed-visualization arm."""
        return self.is_accepted and bool(self.record.study_arm)

    @property
    def user_id(self) -> str | None:
        return self.record.user_id

    def is_feature_currently_enabled(self, now: int) -> bool:
        """Whether the error visualization should be active at `now`."""
        if not self.is_accepted or not self.record.is_suppressed:
            return True
        start = self.record.enrollment_start
        return start is not None and now > start + self.reenable_window

    @property
    def is_capture_enabled(self) -> bool:
        """Capture runs only for accepted participants with the logging setting on."""
        return self.is_accepted and self._get_logging_setting()

    def elapsed(self, now: float) -> float:
        """Seconds since enrollment, or 0 when not enrolled."""
        start = self.record.enrollment_start
        return 0.0 if start is None else max(0.0, now - start)

    # ------------------------------------------------------------------

    def _write(self, values: dict[StateKey, object]) -> None:
        try:
            for key, value in values.items():
                self._state.update(key.value, value)
        except StorageUnavailableError:
            raise
        except OSError as e:
            raise StorageUnavailableError(
                "Could not persist the enrollment record", details={"error": str(e)}
            ) from e

    def _issue_user_id(self, user_id: str) -> None:
        try:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
            with (self._storage_dir / UUID_FILE).open("a", encoding="utf-8") as f:
                f.write(f"{user_id}\n")
        except OSError as e:
            raise StorageUnavailableError(
                "Could not record the study id",
                details={"error": str(e)},
                suggestions=[f"Check that {self._storage_dir} is writable"],
            ) from e


__all__ = (
    "UUID_FILE",
    "EnrollmentManager",
    "EnrollmentRecord",
    "ParticipationStatus",
    "StateKey",
)
