import pytest

from appointment_system.app.auth import AdminActor, ClientActor, ProviderActor
from appointment_system.app.errors import (InvalidTransition, NotCancellable, NotFound, NotReviewable,
                                           ValidationError)
from appointment_system.app.lifecycle import cancel, set_status, submit_review
from appointment_system.app.models import Appointment, Provider
from .conftest import make_appointment, make_client, make_provider


@pytest.fixture
def parties(db):
    return make_client(db), make_provider(db)


@pytest.mark.parametrize("start", ["pending", "confirmed"])
@pytest.mark.parametrize("target", ["confirmed", "cancelled", "completed", "no-show"])
def test_provider_transitions_from_active_states(db, parties, start, target):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status=start)

    updated = set_status(db, appointment.id, ProviderActor(provider.id), target)

    assert updated.status == target


@pytest.mark.parametrize("terminal", ["cancelled", "completed", "no-show"])
def test_terminal_states_reject_transitions(db, parties, terminal):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status=terminal)

    with pytest.raises(InvalidTransition):
        set_status(db, appointment.id, ProviderActor(provider.id), "confirmed")


def test_set_status_rejects_unknown_target(db, parties):
    client, provider = parties
    appointment = make_appointment(db, client, provider)

    with pytest.raises(ValidationError):
        set_status(db, appointment.id, ProviderActor(provider.id), "pending")


def test_set_status_attaches_notes_and_reason(db, parties):
    client, provider = parties
    appointment = make_appointment(db, client, provider)

    updated = set_status(db, appointment.id, ProviderActor(provider.id), "cancelled",
                         notes="Called the client", cancellation_reason="Provider ill")

    assert updated.notes == "Called the client"
    assert updated.cancellation_reason == "Provider ill"


def test_cancellation_reason_only_with_cancellation(db, parties):
    client, provider = parties
    appointment = make_appointment(db, client, provider)

    with pytest.raises(ValidationError):
        set_status(db, appointment.id, ProviderActor(provider.id), "confirmed", cancellation_reason="why")


def test_other_provider_and_clients_see_not_found(db, parties):
    client, provider = parties
    other = make_provider(db, email="other@example.com")
    appointment = make_appointment(db, client, provider)

    with pytest.raises(NotFound):
        set_status(db, appointment.id, ProviderActor(other.id), "confirmed")
    with pytest.raises(NotFound):
        set_status(db, appointment.id, ClientActor(client.id), "confirmed")
    with pytest.raises(NotFound):
        set_status(db, 9999, ProviderActor(provider.id), "confirmed")


def test_admin_can_drive_any_appointment(db, parties):
    client, provider = parties
    appointment = make_appointment(db, client, provider)

    assert set_status(db, appointment.id, AdminActor(1), "confirmed").status == "confirmed"


def test_completion_counts_provider_session(db, parties):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status="confirmed")

    set_status(db, appointment.id, ProviderActor(provider.id), "completed")

    assert db.get(Provider, provider.id).total_sessions == 1


@pytest.mark.parametrize("start", ["pending", "confirmed"])
def test_client_cancels_active_appointment(db, parties, start):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status=start)

    cancelled = cancel(db, appointment.id, client.id, reason="Schedule clash")

    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "Schedule clash"


@pytest.mark.parametrize("terminal", ["cancelled", "completed", "no-show"])
def test_client_cannot_cancel_terminal_appointment(db, parties, terminal):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status=terminal)

    with pytest.raises(NotCancellable):
        cancel(db, appointment.id, client.id)


def test_client_cannot_cancel_someone_elses_appointment(db, parties):
    client, provider = parties
    stranger = make_client(db, email="stranger@example.com")
    appointment = make_appointment(db, client, provider)

    with pytest.raises(NotFound):
        cancel(db, appointment.id, stranger.id)


def test_review_completed_appointment_updates_provider_rating(db, parties):
    client, provider = parties
    first = make_appointment(db, client, provider, status="completed")
    second = make_appointment(db, client, provider, start_time="10:00", end_time="11:00", status="completed")

    reviewed = submit_review(db, first.id, client.id, 5, "Very helpful")
    submit_review(db, second.id, client.id, 4)

    assert reviewed.rating == 5
    assert reviewed.review == "Very helpful"
    assert reviewed.status == "completed"
    assert db.get(Provider, provider.id).rating == 4.5


def test_review_requires_completed_status(db, parties):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status="pending")

    with pytest.raises(NotReviewable):
        submit_review(db, appointment.id, client.id, 5)


@pytest.mark.parametrize("rating", [0, 6, 4.5, True, "5"])
def test_review_rating_bounds(db, parties, rating):
    client, provider = parties
    appointment = make_appointment(db, client, provider, status="completed")

    with pytest.raises(ValidationError):
        submit_review(db, appointment.id, client.id, rating)


def test_review_is_scoped_to_the_client(db, parties):
    client, provider = parties
    stranger = make_client(db, email="stranger@example.com")
    appointment = make_appointment(db, client, provider, status="completed")

    with pytest.raises(NotFound):
        submit_review(db, appointment.id, stranger.id, 5)


@pytest.fixture
def stale_and_fresh(db, parties, session_factory):
    """A pending appointment loaded in one session, then cancelled and committed through another."""
    client, provider = parties
    appointment = make_appointment(db, client, provider)
    stale = session_factory()
    assert stale.get(Appointment, appointment.id).status == "pending"

    fresh = session_factory()
    cancel(fresh, appointment.id, client.id, reason="Cancelled elsewhere")
    fresh.close()

    yield stale, client, provider, appointment.id
    stale.close()


def stored_appointment(session_factory, appointment_id):
    session = session_factory()
    try:
        return session.get(Appointment, appointment_id)
    finally:
        session.close()


def test_status_change_on_stale_read_does_not_overwrite(session_factory, stale_and_fresh):
    stale, _, provider, appointment_id = stale_and_fresh

    with pytest.raises(InvalidTransition):
        set_status(stale, appointment_id, ProviderActor(provider.id), "confirmed")

    stored = stored_appointment(session_factory, appointment_id)
    assert stored.status == "cancelled"
    assert stored.cancellation_reason == "Cancelled elsewhere"


def test_cancel_on_stale_read_does_not_overwrite(session_factory, stale_and_fresh):
    stale, client, _, appointment_id = stale_and_fresh

    with pytest.raises(NotCancellable):
        cancel(stale, appointment_id, client.id, reason="Second thoughts")

    stored = stored_appointment(session_factory, appointment_id)
    assert stored.status == "cancelled"
    assert stored.cancellation_reason == "Cancelled elsewhere"
