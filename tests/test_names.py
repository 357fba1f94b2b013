import pytest

from normalize.names import NameMatcher, names_match, normalize_name


def test_normalize_name_strips_everything_but_letters():
    assert normalize_name("Jan Błachowicz-2") == "janbachowicz"
    assert normalize_name("J. Jones") == "jjones"


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ("Jon Jones", "Jon Jones", True),
        ("Jon Jones", "jon  jones", True),
        ("Jon Jones", "J. Jones", False),
        ("Conor McGregor", "McGregor", True),
        ("Al Iaquinta", "Al Smith", False),
        ("UFC 300: Pereira vs. Hill", "UFC", True),
        ("", "Jon Jones", False),
        ("Jon Jones", None, False),
        ("123", "456", False),
    ],
)
def test_names_match(a, b, expected):
    assert names_match(a, b) is expected


def test_names_match_is_symmetric():
    assert names_match("McGregor", "Conor McGregor")


def test_matcher_applies_overrides_before_matching():
    matcher = NameMatcher({"Alex Poatan": "Alex Pereira"})
    assert matcher.matches("Alex Poatan", "Alex Pereira")
    assert not NameMatcher().matches("Alex Poatan", "Alex Pereira")

    matcher.update({"Bones": "Jon Jones"})
    assert matcher.matches("BONES ", "Jon Jones")
