"""Tests for wsconsole.admission module."""

from wsconsole.admission import Admission, AdmissionPolicy


class TestAdmissionPolicy:
    """Tests for first-connection-wins admission."""

    def test_first_candidate_admitted(self):
        policy = AdmissionPolicy()
        assert policy.on_incoming("a") is Admission.ADMIT
        assert policy.current == "a"
        assert policy.occupied

    def test_second_candidate_rejected(self):
        """Test later candidates are refused while the first is connected."""
        policy = AdmissionPolicy()
        policy.on_incoming("a")
        assert policy.on_incoming("b") is Admission.REJECT
        assert policy.on_incoming("c") is Admission.REJECT
        assert policy.current == "a"

    def test_release_reopens_admission(self):
        policy = AdmissionPolicy()
        policy.on_incoming("a")
        assert policy.release("a") is True
        assert not policy.occupied
        assert policy.on_incoming("c") is Admission.ADMIT

    def test_release_of_other_peer_is_ignored(self):
        """Test releasing a rejected candidate does not free the slot."""
        policy = AdmissionPolicy()
        first, second = object(), object()
        policy.on_incoming(first)
        policy.on_incoming(second)
        assert policy.release(second) is False
        assert policy.current is first
