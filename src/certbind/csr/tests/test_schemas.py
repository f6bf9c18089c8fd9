"""
测试 csr/schemas.py 模块。
"""

import pytest
from pydantic import ValidationError

from src.certbind.csr.schemas import KeyPolicy, RequestDescriptor, SubjectIdentity


def _identity() -> SubjectIdentity:
    return SubjectIdentity(
        common_name="console.example.com",
        organization="Acme",
        organizational_unit="IT",
        locality="Berlin",
        state="Berlin",
        country_code="DE",
    )


def test_key_policy_defaults():
    policy = KeyPolicy()
    assert policy.algorithm == "RSA"
    assert policy.bits == 2048
    assert policy.hash_algorithm == "SHA256"
    assert policy.exportable is True
    assert policy.machine_key_set is True


def test_identity_missing_field():
    with pytest.raises(ValidationError):
        SubjectIdentity(common_name="x")


def test_descriptor_is_immutable():
    descriptor = RequestDescriptor(request_id="r1", identity=_identity(), san_list=("a",))
    with pytest.raises(ValidationError):
        descriptor.san_list = ("b",)
    with pytest.raises(ValidationError):
        descriptor.identity.common_name = "other"


def test_descriptor_subject_dn():
    descriptor = RequestDescriptor(request_id="r1", identity=_identity())
    assert descriptor.subject_dn == "CN=console.example.com,OU=IT,O=Acme,L=Berlin,S=Berlin,C=DE"
    assert descriptor.san_list == ()
