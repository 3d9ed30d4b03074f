import base64

import pytest

from ldapsplit.errors import DecodeError
from ldapsplit.ldif import (
    Record,
    account_name,
    format_entry,
    split_records,
    strip_blank_lines,
    unfold,
)


def test_unfold_joins_continuation_lines():
    assert unfold(["dn: CN=Very Long,", " OU=Users", "mail: a@b"]) == ["dn: CN=Very Long,OU=Users", "mail: a@b"]


def test_split_records_drops_comment_preamble(two_users_ldif):
    records = split_records(two_users_ldif)
    assert [r.index for r in records] == [1, 2]
    assert records[0].dn == "CN=John Doe,OU=Users,DC=example,DC=com"
    assert records[0].lines[1] == "sAMAccountName: jdoe"
    assert not any(r.implicit for r in records)


def test_split_records_empty_document():
    assert split_records("") == []
    assert split_records("# only a comment\n\nversion: 1\n") == []


def test_split_records_content_without_marker_is_implicit_record():
    records = split_records("sAMAccountName: orphan\nmail: x@y\n")
    assert len(records) == 1
    assert records[0].implicit
    assert records[0].dn == ""


def test_split_records_case_insensitive_marker_and_encoded_dn():
    dn = base64.b64encode("CN=Jürgen,DC=example,DC=com".encode("utf-8")).decode("ascii")
    records = split_records(f"DN: CN=a,DC=x\nuid: a\n\ndn:: {dn}\nuid: b\n")
    assert len(records) == 2
    assert records[1].dn == "CN=Jürgen,DC=example,DC=com"


def test_account_name_plain():
    rec = Record(index=1, lines=["dn: CN=x", "sAMAccountName:  jdoe  "])
    assert account_name(rec, "sAMAccountName") == "jdoe"


def test_account_name_attribute_is_case_insensitive():
    rec = Record(index=1, lines=["dn: CN=x", "samaccountname: jdoe"])
    assert account_name(rec, "sAMAccountName") == "jdoe"


def test_account_name_encoded_from_example():
    rec = Record(index=1, lines=["dn: CN=x", "sAMAccountName:: am9objJ="])
    assert account_name(rec, "sAMAccountName") == "john2"


def test_account_name_escapes_dollar_in_decoded_value():
    value = base64.b64encode(b"svc$web").decode("ascii")
    rec = Record(index=1, lines=["dn: CN=x", f"sAMAccountName:: {value}"])
    assert account_name(rec, "sAMAccountName") == "svc\\$web"


def test_account_name_plain_takes_precedence_over_encoded():
    rec = Record(index=1, lines=["dn: CN=x", "sAMAccountName:: am9objI=", "sAMAccountName: plain"])
    assert account_name(rec, "sAMAccountName") == "plain"


def test_account_name_folded_value():
    rec = Record(index=1, lines=["dn: CN=x", "sAMAccountName: very", " longname"])
    assert account_name(rec, "sAMAccountName") == "verylongname"


def test_account_name_missing():
    rec = Record(index=1, lines=["dn: CN=x", "mail: a@b", "# sAMAccountName: commented"])
    assert account_name(rec, "sAMAccountName") is None


def test_account_name_does_not_match_attribute_prefix():
    rec = Record(index=1, lines=["dn: CN=x", "sAMAccountNameHistory: old"])
    assert account_name(rec, "sAMAccountName") is None


def test_account_name_malformed_base64():
    rec = Record(index=3, lines=["dn: CN=bad,DC=x", "sAMAccountName:: !!notbase64!!"])
    with pytest.raises(DecodeError) as exc:
        account_name(rec, "sAMAccountName")
    assert exc.value.index == 3
    assert exc.value.dn == "CN=bad,DC=x"
    assert "record #3" in str(exc.value)


def test_account_name_non_utf8_base64():
    value = base64.b64encode(b"\xff\xfe").decode("ascii")
    rec = Record(index=1, lines=["dn: CN=x", f"sAMAccountName:: {value}"])
    with pytest.raises(DecodeError):
        account_name(rec, "sAMAccountName")


def test_strip_blank_lines_is_idempotent(tmp_path):
    path = tmp_path / "x.ldif"
    path.write_text("dn: CN=x\n\nuid: x\n   \n\nmail: a@b\n", encoding="utf-8")
    assert strip_blank_lines(str(path)) == 3
    first = path.read_text(encoding="utf-8")
    assert first == "dn: CN=x\nuid: x\nmail: a@b\n"
    assert strip_blank_lines(str(path)) == 0
    assert path.read_text(encoding="utf-8") == first


def _rendered(attrs, dn="CN=x,DC=example,DC=com"):
    return format_entry(dn, attrs).splitlines()


def test_format_entry_plain_and_encoded_values():
    lines = _rendered({
        "sn": [b"Doe"],
        "givenName": ["Müller"],
        "description": [b" leading", b":colon"],
        "objectGUID": [b"\xff\x00\x01"],
    })
    assert lines[0] == "dn: CN=x,DC=example,DC=com"
    assert "sn: Doe" in lines
    assert "givenName:: " + base64.b64encode("Müller".encode("utf-8")).decode("ascii") in lines
    assert "description:: " + base64.b64encode(b" leading").decode("ascii") in lines
    assert "description:: " + base64.b64encode(b":colon").decode("ascii") in lines
    assert "objectGUID:: " + base64.b64encode(b"\xff\x00\x01").decode("ascii") in lines


def test_format_entry_does_not_wrap_long_values():
    groups = ",".join(f"OU=Department{i}" for i in range(20))
    lines = _rendered({"memberOf": [f"CN=Staff,{groups},DC=example,DC=com".encode("ascii")]})
    assert f"memberOf: CN=Staff,{groups},DC=example,DC=com" in lines
    assert not any(line.startswith(" ") for line in lines)


def test_format_entry_encodes_non_ascii_dn():
    lines = _rendered({"sAMAccountName": [b"jurgen"]}, dn="CN=Jürgen,DC=example,DC=com")
    assert lines[0] == "dn:: " + base64.b64encode("CN=Jürgen,DC=example,DC=com".encode("utf-8")).decode("ascii")


def test_format_entry_round_trips_through_account_name():
    text = format_entry(
        "CN=Jo,DC=example,DC=com",
        {"sAMAccountName": [b"jo"], "memberOf": [b"CN=A,DC=example,DC=com", b"CN=B,DC=example,DC=com"]},
    )
    (rec,) = split_records(text)
    assert rec.dn == "CN=Jo,DC=example,DC=com"
    assert account_name(rec, "sAMAccountName") == "jo"
    assert [line for line in rec.lines if line.startswith("memberOf")] == [
        "memberOf: CN=A,DC=example,DC=com",
        "memberOf: CN=B,DC=example,DC=com",
    ]


def test_split_records_leaves_comment_lines_out_of_records():
    text = (
        "# jdoe, Users, example.com\n"
        "dn: CN=jdoe,CN=Users,DC=example,DC=com\n"
        "sAMAccountName: jdoe\n"
        "\n"
        "# john2, Users, example.com, a long entry name that ldapsearch\n"
        "  folded onto a second line\n"
        "dn: CN=john2,CN=Users,DC=example,DC=com\n"
        "sAMAccountName: john2\n"
        "description: first part\n"
        "  and continuation\n"
    )
    first, second = split_records(text)
    assert first.lines == ["dn: CN=jdoe,CN=Users,DC=example,DC=com", "sAMAccountName: jdoe", ""]
    assert second.lines[-2:] == ["description: first part", "  and continuation"]
    assert not any(line.startswith("#") for line in first.lines + second.lines)
