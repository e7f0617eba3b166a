import hashlib
import hmac
import zlib
from datetime import datetime

from asr_providers import jianying, signing


class TestDeviceId:
    def test_odd_year_uses_fixed_suffix(self):
        tdid = signing.generate_device_id(now=datetime(2025, 3, 1), getnode=lambda: 0x001122334455)
        assert tdid == "395" + "3278516897751"

    def test_even_year_uses_hardware_address(self):
        node = 0x001122334455
        tdid = signing.generate_device_id(now=datetime(2026, 3, 1), getnode=lambda: node)
        assert tdid == "396" + f"{node:013d}"
        assert tdid.startswith("3960")

    def test_even_year_without_address_falls_back(self):
        tdid = signing.generate_device_id(now=datetime(2024, 1, 1), getnode=lambda: 0)
        assert tdid == "394" + "1234567890123"

    def test_random_node_counts_as_unavailable(self):
        random_node = (1 << 40) | 0x1234
        assert signing.hardware_address_suffix(lambda: random_node) is None


class TestTemplateSign:
    def test_sign_uses_path_tail_and_timestamp(self):
        sign, device_time = signing.generate_sign("/lv/v1/upload_sign", "3951", timestamp=1700000000)
        expected = hashlib.md5(b"9e2c|ad_sign|4|6.6.0|1700000000|3951|11ac").hexdigest()
        assert device_time == "1700000000"
        assert sign == expected

    def test_short_path_is_used_whole(self):
        sign, _ = signing.generate_sign("/q", "1", timestamp=1)
        assert sign == hashlib.md5(b"9e2c|/q|4|6.6.0|1|1|11ac").hexdigest()

    def test_sign_headers(self):
        headers = signing.sign_headers("/lv/v1/audio_subtitle/query", "tdid-1", timestamp=42)
        assert headers["tdid"] == "tdid-1"
        assert headers["device-time"] == "42"
        assert headers["pf"] == "4"
        assert headers["appvr"] == "6.6.0"
        assert headers["sign-ver"] == "1"
        assert len(headers["sign"]) == 32


class TestSigV4:
    def test_signing_key_matches_published_example(self):
        key = signing.signing_key(
            "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY", "20120215", "us-east-1", "iam"
        )
        assert key.hex() == "f4780e2d9f65fa895f9c67b32ce1baf0b0d8a43505a000a1a9e090d414db404d"

    def test_canonical_query_sorts_by_key(self):
        assert signing.canonical_query("b=2&A=1&a=0") == "A=1&a=0&b=2"
        assert signing.canonical_query("") == ""

    def test_upload_auth_query_is_already_canonical(self):
        query = jianying.upload_auth_query(10)
        assert signing.canonical_query(query) == query
        assert query.endswith("SpaceName=lv-mac-recognition&Version=2020-11-19&s=5y0udbjapi")

    def test_canonical_request_lowercases_and_trims_headers(self):
        request, signed = signing.canonical_request(
            "GET",
            "Version=1&Action=Go",
            {"X-Amz-Date": " 20240101T000000Z ", "x-amz-security-token": "tok"},
        )
        assert signed == "x-amz-date;x-amz-security-token"
        assert request.split("\n") == [
            "GET",
            "/",
            "Action=Go&Version=1",
            "x-amz-date:20240101T000000Z",
            "x-amz-security-token:tok",
            "",
            "x-amz-date;x-amz-security-token",
            hashlib.sha256(b"").hexdigest(),
        ]

    def test_signature_chain(self):
        headers = {"x-amz-date": "20240101T000000Z", "x-amz-security-token": "tok"}
        query = "Action=Go"
        request, signed = signing.canonical_request("GET", query, headers)
        string_to_sign = "\n".join([
            "AWS4-HMAC-SHA256",
            "20240101T000000Z",
            "20240101/cn/vod/aws4_request",
            hashlib.sha256(request.encode()).hexdigest(),
        ])
        key = signing.signing_key("secret", "20240101", "cn", "vod")
        expected = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()
        assert signing.aws_signature("secret", query, headers, "GET", "", "cn", "vod") == (expected, signed)
        assert signed == "x-amz-date;x-amz-security-token"

    def test_authorization_header(self):
        header = signing.authorization_header("AK", "abc", "20240101", "cn", "vod", "x-amz-date")
        assert header == (
            "AWS4-HMAC-SHA256 Credential=AK/20240101/cn/vod/aws4_request, "
            "SignedHeaders=x-amz-date, Signature=abc"
        )


class TestChecksum:
    def test_file_crc32(self, tmp_path):
        path = tmp_path / "a.bin"
        data = b"hello world" * 1000
        path.write_bytes(data)
        assert signing.file_crc32(path, chunk_size=7) == f"{zlib.crc32(data):08x}"
