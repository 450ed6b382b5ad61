"""
Unit Tests for the Correction Workflow
Tests for: field key parsing, submission, approval/rejection, bulk approval
"""
import pytest

from corrections import (
    BULK_APPROVE_NOTE,
    DEFAULT_APPROVE_NOTE,
    ApplyOutcome,
    BioField,
    ClassCorrection,
    CorrectionAction,
    GradeCorrection,
    approve_all,
    current_value,
    field_label,
    parse_field_key,
    parse_number,
    pending_requests,
    pending_value,
    resolve_correction,
    submit_correction,
)
from errors import (
    CorrectionNotFoundError,
    InvalidTransitionError,
    UnknownFieldError,
    ValidationError,
)
from schemas import CorrectionStatus
from tests.factories import build_student, semester_record


def _submit(student, field_key, proposed, reason="Salah ketik"):
    return submit_correction(student, field_key, "", "", proposed, reason)


class TestFieldKeys:
    """Parsing of fieldKey into a locator"""

    def test_bio_paths(self):
        assert parse_field_key("address") == BioField("address", ("address",))
        assert parse_field_key("father.name") == BioField("father.name", ("father", "name"))
        assert parse_field_key("dapodik.noKK") == BioField("dapodik.noKK", ("dapodik", "no_kk"))

    def test_class_name_is_a_bio_field(self):
        assert isinstance(parse_field_key("className"), BioField)

    def test_class_and_grade_keys(self):
        assert parse_field_key("class-2") == ClassCorrection(2)
        assert parse_field_key("grade-3-Matematika") == GradeCorrection(3, "Matematika")

    def test_subject_with_dash_is_kept_whole(self):
        assert parse_field_key("grade-1-Seni-Budaya") == GradeCorrection(1, "Seni-Budaya")

    @pytest.mark.parametrize("key", [
        "unknownField", "father.shoeSize", "documents", "id",
        "class-7", "class-x", "grade-0-Matematika", "grade-2", "grade-2-",
    ])
    def test_unknown_keys_rejected(self, key):
        with pytest.raises(UnknownFieldError):
            parse_field_key(key)

    def test_labels(self):
        assert field_label("address") == "Alamat Jalan"
        assert field_label("grade-3-IPA") == "Nilai IPA (Semester 3)"
        assert field_label("class-1") == "Kelas Semester 1"
        assert field_label("religion") == "Agama"

    def test_current_value(self):
        student = build_student()
        student.academic_records[3] = semester_record(3, {"Matematika": 88}, class_name="VIII A")
        assert current_value(student, parse_field_key("father.name")) == "Ayah Budi"
        assert current_value(student, parse_field_key("grade-3-Matematika")) == "88"
        assert current_value(student, parse_field_key("class-3")) == "VIII A"
        assert current_value(student, parse_field_key("guardian.name")) == ""

    def test_parse_number(self):
        assert parse_number("95") == 95
        assert parse_number("87.5") == 87.5
        assert parse_number("") == 0
        with pytest.raises(ValueError):
            parse_number("sembilan")
        with pytest.raises(ValueError):
            parse_number("nan")


class TestSubmitCorrection:
    """Creating correction requests"""

    def test_creates_pending_request(self):
        student = build_student()
        request = submit_correction(student, "address", "Alamat Jalan", "Dusun Pacet", "Jl. Raya 1", "Pindah rumah")

        assert request.status == CorrectionStatus.PENDING
        assert request.request_date
        assert student.correction_requests == [request]
        assert pending_value(student, "address") == "Jl. Raya 1"

    def test_field_name_defaults_to_label(self):
        request = _submit(build_student(), "nisn", "0011111111")
        assert request.field_name == "NISN"

    def test_resubmission_replaces_pending_request(self):
        student = build_student()
        first = _submit(student, "address", "A")
        second = _submit(student, "address", "B")

        pending = [r for r in student.correction_requests if r.field_key == "address"]
        assert pending == [second]
        assert first.id != second.id

    def test_resubmission_keeps_resolved_history(self):
        student = build_student()
        first = _submit(student, "address", "A")
        student = resolve_correction(student, first.id, CorrectionAction.REJECT, "Tidak sesuai KK").student
        _submit(student, "address", "B")

        statuses = sorted(r.status.value for r in student.correction_requests)
        assert statuses == ["PENDING", "REJECTED"]

    def test_reason_is_required(self):
        student = build_student()
        with pytest.raises(ValidationError):
            _submit(student, "address", "X", reason="   ")
        assert student.correction_requests == []

    def test_unknown_field_rejected_before_mutation(self):
        student = build_student()
        with pytest.raises(UnknownFieldError):
            _submit(student, "hobby", "Sepak bola")
        assert student.correction_requests == []

    def test_grade_proposal_must_be_numeric(self):
        with pytest.raises(ValidationError):
            _submit(build_student(), "grade-1-Matematika", "delapan puluh")


class TestResolveCorrection:
    """Approval and rejection"""

    def test_bio_round_trip(self):
        student = build_student()
        request = _submit(student, "address", "X")

        resolution = resolve_correction(student, request.id, CorrectionAction.APPROVE)

        assert resolution.student.address == "X"
        assert resolution.request.status == CorrectionStatus.APPROVED
        assert resolution.request.admin_note == DEFAULT_APPROVE_NOTE
        assert resolution.request.processed_date
        assert resolution.outcome == ApplyOutcome.APPLIED
        assert resolution.applied

    def test_returns_copy_and_leaves_input_untouched(self):
        student = build_student()
        request = _submit(student, "address", "X")

        resolution = resolve_correction(student, request.id, "APPROVE", verifier_name="Pak Admin")

        assert student.address == "Dusun Pacet"
        assert student.correction_requests[0].status == CorrectionStatus.PENDING
        assert resolution.student is not student
        assert resolution.request.verifier_name == "Pak Admin"

    def test_grade_round_trip(self):
        student = build_student()
        student.academic_records[3] = semester_record(3, {"Matematika": 70, "IPA": 80})
        request = _submit(student, "grade-3-Matematika", "95")

        updated = resolve_correction(student, request.id, CorrectionAction.APPROVE).student

        scores = {s.subject: s.score for s in updated.academic_records[3].subjects}
        assert scores == {"Matematika": 95, "IPA": 80}

    def test_grade_for_missing_subject_is_appended(self):
        student = build_student()
        student.academic_records[2] = semester_record(2, {"IPA": 80})
        request = _submit(student, "grade-2-Matematika", "88")

        resolution = resolve_correction(student, request.id, CorrectionAction.APPROVE)

        subjects = resolution.student.academic_records[2].subjects
        added = [s for s in subjects if s.subject == "Matematika"]
        assert resolution.request.status == CorrectionStatus.APPROVED
        assert resolution.outcome == ApplyOutcome.APPLIED
        assert len(added) == 1 and added[0].score == 88
        assert added[0].no == 2

    def test_grade_for_missing_semester_creates_record(self):
        student = build_student(class_name="IX A")
        request = _submit(student, "grade-5-IPS", "90")

        updated = resolve_correction(student, request.id, "APPROVE", active_year="2024/2025").student

        record = updated.academic_records[5]
        assert record.class_level == "IX"
        assert record.class_name == "IX A"
        assert record.subjects[0].subject == "IPS"
        assert record.subjects[0].score == 90

    def test_class_correction(self):
        student = build_student(class_name="VIII B")
        request = _submit(student, "class-2", "VII C")

        updated = resolve_correction(student, request.id, "APPROVE").student

        assert updated.academic_records[2].class_name == "VII C"
        assert updated.academic_records[2].class_level == "VII"
        assert updated.class_name == "VIII B"

    def test_numeric_field_is_coerced(self):
        student = build_student()
        request = _submit(student, "height", "152.5")
        assert resolve_correction(student, request.id, "APPROVE").student.height == 152.5

    def test_uncoercible_value_is_approved_but_not_applied(self):
        student = build_student(height=150)
        request = _submit(student, "height", "tinggi")

        resolution = resolve_correction(student, request.id, "APPROVE")

        assert resolution.request.status == CorrectionStatus.APPROVED
        assert resolution.outcome == ApplyOutcome.NOT_APPLIED
        assert resolution.student.height == 150

    def test_guardian_is_created_on_demand(self):
        student = build_student()
        assert student.guardian is None
        request = _submit(student, "guardian.name", "Paman Budi")

        updated = resolve_correction(student, request.id, "APPROVE").student

        assert updated.guardian.name == "Paman Budi"

    def test_nested_dapodik_field(self):
        student = build_student()
        request = _submit(student, "dapodik.noKK", "3516000000009999")
        updated = resolve_correction(student, request.id, "APPROVE").student
        assert updated.dapodik.no_kk == "3516000000009999"

    def test_reject_requires_note(self):
        student = build_student()
        request = _submit(student, "address", "X")
        with pytest.raises(ValidationError):
            resolve_correction(student, request.id, CorrectionAction.REJECT, admin_note=" ")
        assert student.correction_requests[0].status == CorrectionStatus.PENDING

    def test_reject_leaves_data_unchanged(self):
        student = build_student()
        request = _submit(student, "address", "X")

        resolution = resolve_correction(student, request.id, CorrectionAction.REJECT, admin_note="Tidak sesuai KK")

        assert resolution.student.address == "Dusun Pacet"
        assert resolution.request.status == CorrectionStatus.REJECTED
        assert resolution.request.admin_note == "Tidak sesuai KK"
        assert resolution.outcome == ApplyOutcome.REJECTED

    def test_cannot_resolve_twice(self):
        student = build_student()
        request = _submit(student, "address", "X")
        student = resolve_correction(student, request.id, "APPROVE").student
        with pytest.raises(InvalidTransitionError):
            resolve_correction(student, request.id, "REJECT", admin_note="Salah")

    def test_unknown_request(self):
        with pytest.raises(CorrectionNotFoundError):
            resolve_correction(build_student(), "nope", "APPROVE")

    def test_legacy_unknown_key_is_not_applied(self):
        student = build_student()
        request = _submit(student, "address", "X")
        student.correction_requests[0].field_key = "hobby"

        resolution = resolve_correction(student, request.id, "APPROVE")

        assert resolution.request.status == CorrectionStatus.APPROVED
        assert resolution.outcome == ApplyOutcome.NOT_APPLIED


class TestApproveAll:
    """Bulk approval"""

    def test_approves_every_listed_request(self):
        student = build_student()
        student.academic_records[1] = semester_record(1, {"Matematika": 70})
        a = _submit(student, "address", "Jl. Baru")
        b = _submit(student, "grade-1-Matematika", "85")

        result = approve_all(student, [a.id, b.id], verifier_name="Admin")

        assert result.outcomes == {a.id: ApplyOutcome.APPLIED, b.id: ApplyOutcome.APPLIED}
        assert result.student.address == "Jl. Baru"
        assert result.student.academic_records[1].subjects[0].score == 85
        assert pending_requests(result.student) == []
        assert {r.admin_note for r in result.student.correction_requests} == {BULK_APPROVE_NOTE}
        assert len(pending_requests(student)) == 2

    def test_skips_resolved_requests(self):
        student = build_student()
        a = _submit(student, "address", "Jl. Baru")
        student = resolve_correction(student, a.id, "REJECT", admin_note="Tidak").student

        result = approve_all(student, [a.id])

        assert result.outcomes == {}
        assert result.student.correction_requests[0].status == CorrectionStatus.REJECTED
