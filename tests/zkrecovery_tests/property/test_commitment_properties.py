"""
Property-based tests for commitment and nullifier derivation.

Verifies that:
- Commitments are a pure function of the guardian secrets
- Nullifiers bind to both sides of the owner transition
- Every derived value stays inside the BN254 scalar field

Uses Hypothesis for property-based testing with random inputs.
"""

from hypothesis import assume, given, settings, strategies as st

from zkrecovery.core.field_hash import (
    FIELD_MODULUS,
    address_to_field,
    compute_commitment,
    compute_nullifier,
    word_to_field,
)

field_elements = st.integers(min_value=0, max_value=FIELD_MODULUS - 1)
addresses = st.binary(min_size=20, max_size=20).map(lambda raw: "0x" + raw.hex())
words = st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=20)


class TestCommitmentProperties:
    @given(secret_key=field_elements, secret_answer=words)
    @settings(max_examples=50)
    def test_commitment_deterministic(self, secret_key, secret_answer):
        assert compute_commitment(secret_key, secret_answer) == compute_commitment(secret_key, secret_answer)

    @given(secret_key=field_elements, answer_a=words, answer_b=words)
    @settings(max_examples=50)
    def test_commitment_binds_answer(self, secret_key, answer_a, answer_b):
        assume(answer_a != answer_b)
        assert compute_commitment(secret_key, answer_a) != compute_commitment(secret_key, answer_b)

    @given(secret_key=field_elements, secret_answer=words)
    @settings(max_examples=30)
    def test_commitment_in_field(self, secret_key, secret_answer):
        assert 0 <= compute_commitment(secret_key, secret_answer) < FIELD_MODULUS


class TestNullifierProperties:
    @given(
        secret_key=field_elements,
        secret_answer=words,
        new_owner=addresses,
        current_owner=addresses,
        other=addresses,
    )
    @settings(max_examples=50)
    def test_nullifier_binds_transition(self, secret_key, secret_answer, new_owner, current_owner, other):
        assume(other != new_owner and other != current_owner)
        base = compute_nullifier(secret_key, secret_answer, new_owner, current_owner)

        assert compute_nullifier(secret_key, secret_answer, other, current_owner) != base
        assert compute_nullifier(secret_key, secret_answer, new_owner, other) != base

    @given(secret_key=field_elements, secret_answer=words, new_owner=addresses, current_owner=addresses)
    @settings(max_examples=30)
    def test_nullifier_independent_of_checksum_case(self, secret_key, secret_answer, new_owner, current_owner):
        assert compute_nullifier(secret_key, secret_answer, new_owner, current_owner) == compute_nullifier(
            secret_key, secret_answer, new_owner.upper().replace("0X", "0x"), current_owner
        )


class TestEncodingProperties:
    @given(address=addresses)
    @settings(max_examples=30)
    def test_address_fits_low_order_bytes(self, address):
        assert address_to_field(address) < 2 ** 160
        assert address_to_field(address).to_bytes32()[12:].hex() == address[2:]

    @given(word=words)
    @settings(max_examples=30)
    def test_word_encoding_is_injective_on_bytes(self, word):
        value = word_to_field(word)
        assert value.to_bytes32().lstrip(b"\x00") == word.encode("utf-8")
