"""Tests for provider ID parsing."""

import pytest

from k8s_ec2_srcdst.errors import MalformedProviderIDError, ProviderIDError, UnsupportedProviderError
from k8s_ec2_srcdst.provider_id import parse_instance_id


@pytest.mark.parametrize(
    "provider_id, expected",
    [
        ("aws:///us-west-2a/i-09fc5a0ae524b0333", "i-09fc5a0ae524b0333"),
        ("aws://us-west-2a/i-a123hd52", "i-a123hd52"),
        ("aws:///us-mock-1/i-abcdefgh", "i-abcdefgh"),
        ("aws:///us-east-1b/i-0123456789abcdef0/", "i-0123456789abcdef0"),
    ],
)
def test_parse_valid_provider_ids(provider_id, expected):
    assert parse_instance_id(provider_id) == expected


@pytest.mark.parametrize(
    "provider_id",
    ["gce://us-west-1a/test", "this_will_fail", "i-a123hd52", "", "azure:///sub/i-1234"],
)
def test_non_aws_provider_is_unsupported(provider_id):
    with pytest.raises(UnsupportedProviderError) as exc_info:
        parse_instance_id(provider_id)
    assert exc_info.value.provider_id == provider_id


@pytest.mark.parametrize(
    "provider_id",
    [
        "aws:///us-west-2a/extra/i-a123hd52",
        "aws:///us-west-2a/vol-a123hd52",
        "aws:///us-west-2a/",
        "aws",
    ],
)
def test_malformed_aws_provider_ids(provider_id):
    with pytest.raises(MalformedProviderIDError):
        parse_instance_id(provider_id)


def test_provider_errors_share_a_base_class():
    with pytest.raises(ProviderIDError):
        parse_instance_id("gce://us-west-1a/test")
