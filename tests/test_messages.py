"""Tests for reminder message text."""

from datetime import date

import pytest

from touchbase.db.models import Contact
from touchbase.engine.errors import InvalidMessageError
from touchbase.engine.messages import (
    birthday_day_message,
    birthday_week_message,
    communication_message,
    validate_message,
)


def test_communication_message_due():
    contact = Contact(first_name="Ana", communication_frequency="monthly")

    assert communication_message(contact) == "Time for your monthly check-in with Ana!"
    assert communication_message(contact, 0) == "Time for your monthly check-in with Ana!"


def test_communication_message_overdue():
    contact = Contact(first_name="Ana", communication_frequency="biannually")

    assert communication_message(contact, 12) == (
        "Time to reach out to Ana! It's been 12 days past your bi-annual reminder."
    )
    assert communication_message(contact, 1).endswith("1 day past your bi-annual reminder.")


def test_communication_message_without_cadence():
    assert communication_message(Contact(first_name="Ben")) == "Reminder to contact Ben"


def test_birthday_messages():
    contact = Contact(first_name="Cy", last_name="Young")

    assert birthday_week_message(contact, date(2025, 3, 15)) == (
        "Cy's birthday is coming up in 7 days (March 15)!"
    )
    assert birthday_day_message(contact) == "Today is Cy's birthday! 🎉"


def test_long_names_are_truncated_to_fit():
    contact = Contact(first_name="A" * 300, communication_frequency="weekly")

    message = communication_message(contact)

    assert len(message) == 200
    assert message.endswith("…")


def test_validate_message():
    assert validate_message("  hello  ") == "hello"
    assert validate_message("x" * 200) == "x" * 200

    with pytest.raises(InvalidMessageError):
        validate_message("   ")
    with pytest.raises(InvalidMessageError):
        validate_message("x" * 201)
