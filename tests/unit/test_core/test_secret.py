# SPDX-License-Identifier: LGPL-3.0-or-later
"""Secret must never leak its value through rendering, pickling or JSON."""
from __future__ import annotations

import copy
import json
import pickle

import pytest
from virtconn.core.secret import MASK, Secret


@pytest.mark.security
class TestSecretRendering:
    def test_str_repr_format_masked(self):
        s = Secret("hunter2")

        assert str(s) == MASK
        assert "hunter2" not in repr(s)
        assert f"{s}" == MASK
        assert "%s" % s == MASK
        assert "{:>20}".format(s) == MASK

    def test_reveal(self):
        assert Secret("hunter2").reveal() == "hunter2"

    def test_not_picklable(self):
        with pytest.raises(TypeError):
            pickle.dumps(Secret("hunter2"))

    def test_not_json_serializable(self):
        with pytest.raises(TypeError):
            json.dumps({"password": Secret("hunter2")})

    def test_immutable(self):
        s = Secret("a")
        with pytest.raises(AttributeError):
            s._value = "b"

    def test_copy_returns_same_object(self):
        s = Secret("a")
        assert copy.copy(s) is s
        assert copy.deepcopy({"k": s})["k"] is s


@pytest.mark.unit
class TestSecretValueSemantics:
    def test_equality(self):
        assert Secret("a") == Secret("a")
        assert Secret("a") != Secret("b")
        assert Secret("a") != "a"

    def test_hashable_as_memo_key(self):
        seen = {("esx01", "root", Secret("pw"))}
        assert ("esx01", "root", Secret("pw")) in seen
        assert ("esx01", "root", Secret("other")) not in seen

    def test_truthiness(self):
        assert not Secret("")
        assert not Secret(None)
        assert Secret("x")

    def test_coerce(self):
        s = Secret("x")
        assert Secret.coerce(None) is None
        assert Secret.coerce(s) is s
        assert Secret.coerce("x") == s

    def test_wrapping_a_secret_keeps_value(self):
        assert Secret(Secret("x")).reveal() == "x"
