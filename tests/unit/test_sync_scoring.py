"""
Unit tests for completeness and compliance scoring.
"""
from packages.shared.models import Address
from apps.worker.sync.scoring import (
    compliance_score,
    data_completeness,
    integration_overall,
    recommendations,
)
from tests.fixtures.patients import complete_patient, required_only_patient


def test_required_only_scores_70():
    assert data_completeness(required_only_patient()) == 70


def test_all_fields_score_100():
    assert data_completeness(complete_patient()) == 100


def test_partial_fields():
    # 4/5 required, 2/5 optional -> 56 + 12
    patient = required_only_patient(phone_number=None, email="a@b.ae", blood_type="A+")
    assert data_completeness(patient) == 68


def test_blank_strings_do_not_count():
    patient = required_only_patient(phone_number="   ", address=Address(street=""))
    assert data_completeness(patient) == 56


def test_integration_overall():
    assert integration_overall({}) == 0.0
    assert integration_overall({"fhir": True, "emr": False}) == 0.5


def test_compliance_score_takes_the_best_signal():
    assert compliance_score(40, 0.9, 5) == 90
    assert compliance_score(40, 0.1, 1) == 80
    assert compliance_score(70, 0.0, 10) == 70


def test_recommendations_name_gaps():
    recs = recommendations(required_only_patient(), {"fhir": True, "emr": False}, 70)
    assert any("email" in r for r in recs)
    assert any("emr" in r for r in recs)
    assert recommendations(complete_patient(), {"fhir": True}, 100) == []
