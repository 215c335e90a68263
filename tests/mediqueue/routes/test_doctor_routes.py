import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from mediqueue.models.doctor import Doctor
from mediqueue.models.medical_record import MedicalRecord
from mediqueue.models.profile import ROLE_DOCTOR, Profile
from mediqueue.routes.doctor_routes import (
    CompleteBookingRequest,
    UpdateAvailabilityRequest,
    UpdateConsultationTimeRequest,
    call_next_patient,
    complete_patient,
    get_doctor_queue,
    get_my_doctor_profile,
    update_availability,
    update_consultation_time,
)


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('mediqueue.routes.doctor_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def doctor_with_profile(queue_db, add_doctor):
    doctor = add_doctor('doctor@clinic.test', 'Dr. Rivera')
    return doctor, queue_db.get(Profile, doctor.profile_id)


def test_complete_booking_request_normalizes_blank_fields() -> None:
    request = CompleteBookingRequest(diagnosis='  Migraine ', prescription='   ')

    assert request.diagnosis == 'Migraine'
    assert request.prescription is None
    assert request.to_record().diagnosis == 'Migraine'
    assert CompleteBookingRequest().to_record() is None


def test_update_consultation_time_request_rejects_out_of_range() -> None:
    with pytest.raises(ValidationError):
        UpdateConsultationTimeRequest(average_consultation_minutes=0)
    with pytest.raises(ValidationError):
        UpdateConsultationTimeRequest(average_consultation_minutes=10_000)


def test_get_my_doctor_profile_creates_entry_on_first_visit(ledger, queue_db) -> None:
    profile = Profile(email='new@clinic.test', full_name='Dr. New', role=ROLE_DOCTOR)
    queue_db.add(profile)
    queue_db.commit()

    first = get_my_doctor_profile(current_user=profile, ledger=ledger)
    second = get_my_doctor_profile(current_user=profile, ledger=ledger)

    assert first.created is True
    assert second.created is False
    assert first.id == second.id
    assert first.specialization == 'General Practice'
    assert first.average_consultation_minutes == 15
    assert queue_db.query(Doctor).filter(Doctor.profile_id == profile.id).count() == 1


def test_call_next_and_queue_view(ledger, doctor_with_profile, add_patient) -> None:
    doctor, profile = doctor_with_profile
    ledger.create_booking(doctor.id, add_patient('one@example.test', 'Ana Silva').id)
    ledger.create_booking(doctor.id, add_patient('two@example.test', 'Ben Okafor').id)

    called = call_next_patient(current_user=profile, ledger=ledger)
    queue = get_doctor_queue(current_user=profile, ledger=ledger)

    assert (called.queue_number, called.patient_full_name) == (1, 'Ana Silva')
    assert queue.current_patient.queue_number == 1
    assert queue.waiting_count == 1
    assert [entry.patient_full_name for entry in queue.entries] == ['Ana Silva', 'Ben Okafor']


def test_call_next_returns_409_when_queue_is_empty(ledger, doctor_with_profile) -> None:
    _, profile = doctor_with_profile

    with pytest.raises(HTTPException) as exception_info:
        call_next_patient(current_user=profile, ledger=ledger)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'No patients in the waiting queue.'


def test_call_next_returns_409_while_patient_is_called(ledger, doctor_with_profile, add_patient) -> None:
    doctor, profile = doctor_with_profile
    ledger.create_booking(doctor.id, add_patient('one@example.test').id)
    ledger.create_booking(doctor.id, add_patient('two@example.test').id)
    call_next_patient(current_user=profile, ledger=ledger)

    with pytest.raises(HTTPException) as exception_info:
        call_next_patient(current_user=profile, ledger=ledger)

    assert exception_info.value.status_code == 409


def test_complete_patient_with_record(ledger, queue_db, doctor_with_profile, add_patient) -> None:
    doctor, profile = doctor_with_profile
    booking = ledger.create_booking(doctor.id, add_patient('one@example.test').id)
    call_next_patient(current_user=profile, ledger=ledger)

    response = complete_patient(
        booking_id=booking.id,
        data=CompleteBookingRequest(diagnosis='Bronchitis', prescription='Amoxicillin'),
        current_user=profile,
        ledger=ledger,
    )

    assert response.status == 'completed'
    record = queue_db.query(MedicalRecord).one()
    assert (record.diagnosis, record.prescription) == ('Bronchitis', 'Amoxicillin')


def test_complete_patient_rejects_waiting_booking(ledger, doctor_with_profile, add_patient) -> None:
    doctor, profile = doctor_with_profile
    booking = ledger.create_booking(doctor.id, add_patient('one@example.test').id)

    with pytest.raises(HTTPException) as exception_info:
        complete_patient(booking_id=booking.id, data=None, current_user=profile, ledger=ledger)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Only a called patient can be marked as completed.'


def test_complete_patient_hides_other_doctors_bookings(ledger, add_doctor, doctor_with_profile, add_patient) -> None:
    _, profile = doctor_with_profile
    other_doctor = add_doctor('other@clinic.test')
    booking = ledger.create_booking(other_doctor.id, add_patient('one@example.test').id)
    ledger.call_next(other_doctor.id)

    with pytest.raises(HTTPException) as exception_info:
        complete_patient(booking_id=booking.id, data=None, current_user=profile, ledger=ledger)

    assert exception_info.value.status_code == 404


def test_update_consultation_time_changes_wait_estimate(ledger, doctor_with_profile, add_patient) -> None:
    doctor, profile = doctor_with_profile
    ledger.create_booking(doctor.id, add_patient('one@example.test').id)
    patient = add_patient('two@example.test')
    booking = ledger.create_booking(doctor.id, patient.id)

    response = update_consultation_time(
        UpdateConsultationTimeRequest(average_consultation_minutes=30),
        current_user=profile,
        ledger=ledger,
    )

    assert response.average_consultation_minutes == 30
    assert ledger.estimated_wait(doctor.id, booking.queue_number, patient.id) == 30


def test_update_availability_hides_doctor_from_booking(ledger, doctor_with_profile) -> None:
    doctor, profile = doctor_with_profile

    response = update_availability(UpdateAvailabilityRequest(is_available=False), current_user=profile, ledger=ledger)

    assert response.is_available is False
    assert ledger.db.get(Doctor, doctor.id).is_available is False
