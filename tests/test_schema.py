# test_schema.py
import logging

import numpy as np
import pytest
import sympy as sp
import yaml
from numpy.testing import assert_allclose
from pydantic import ValidationError

from magstruct.config_loader import load_config
from magstruct.exceptions import InvalidParameterError, UnknownModeError
from magstruct.functions import gm_planar, gm_spherical3d
from magstruct.schema import (
    FourierParameters,
    FuncParameters,
    HelicalParameters,
    MagStructConfig,
    RotateParameters,
    TileParameters,
    parse_generation_parameters,
    to_array,
)

CRYSTAL = {
    "lattice_parameters": {"a": 4.0, "b": 4.0, "c": 4.0},
    "atoms_uc": [{"label": "Ni1", "pos": [0, 0, 0], "spin_S": 1.0}],
}


# --- parse_generation_parameters ---
def test_default_mode_is_tile():
    params = parse_generation_parameters({})
    assert isinstance(params, TileParameters)
    assert params.norm is True
    assert params.epsilon == pytest.approx(1e-5)


def test_mode_is_case_insensitive_and_aliases():
    params = parse_generation_parameters({"mode": "HELICAL", "nExt": [2, 1, 1], "unitS": "LU"})
    assert isinstance(params, HelicalParameters)
    assert params.r0 is True
    assert params.unit_s == "lu"
    assert_allclose(params.n_ext, [2, 1, 1])


def test_field_names_accepted():
    params = parse_generation_parameters({"mode": "extend", "n_ext": 0.01})
    assert isinstance(params, TileParameters)
    assert_allclose(params.n_ext, [0.01])


def test_unknown_mode():
    with pytest.raises(UnknownModeError, match="Wrong mode value"):
        parse_generation_parameters({"mode": "spiral"})
    with pytest.raises(UnknownModeError):
        parse_generation_parameters({"mode": 3})


def test_func_needs_x0():
    with pytest.raises(InvalidParameterError):
        parse_generation_parameters({"mode": "func"})


def test_func_by_name():
    params = parse_generation_parameters({"mode": "func", "func": "gm_planar", "x0": [0, 0, 0, 0, 0, 0]})
    assert isinstance(params, FuncParameters)
    assert params.func is gm_planar
    default = parse_generation_parameters({"mode": "func", "x0": [0] * 7})
    assert default.func is gm_spherical3d


def test_func_unknown_name():
    with pytest.raises(InvalidParameterError, match="Unknown parametrization"):
        parse_generation_parameters({"mode": "func", "func": "gm_nothing", "x0": [0]})


def test_rotate_phi_placeholder():
    params = parse_generation_parameters({"mode": "rotate", "phi": "1j"})
    assert isinstance(params, RotateParameters)
    assert isinstance(params.phi, complex)
    real_phi = parse_generation_parameters({"mode": "rotate", "phi": 0.5})
    assert real_phi.phi == pytest.approx(0.5)


def test_fourier_pairs_and_flat_form():
    F = [[1.0], [0.0], [0.0]]
    pairs = parse_generation_parameters({"mode": "fourier", "Fk": [(F, [0.5, 0, 0])]})
    flat = parse_generation_parameters({"mode": "fourier", "Fk": [F, [0.5, 0, 0]]})
    for params in (pairs, flat):
        assert isinstance(params, FourierParameters)
        assert len(params.fk) == 1
        assert params.fk[0][0].shape == (3, 1)
        assert_allclose(params.fk[0][1], [0.5, 0, 0])


def test_fourier_needs_components():
    with pytest.raises(InvalidParameterError):
        parse_generation_parameters({"mode": "fourier"})


def test_ignored_options_are_logged(caplog):
    with caplog.at_level(logging.WARNING):
        params = parse_generation_parameters({"mode": "random", "r0": False})
    assert "Ignoring options ['r0']" in caplog.text
    assert not hasattr(params, "r0")


def test_parsed_model_passes_through():
    params = parse_generation_parameters({"mode": "random"})
    assert parse_generation_parameters(params) is params


# --- to_array ---
def test_to_array_types():
    assert to_array([[1, 2, 3]]).dtype == float
    complex_arr = to_array([["1+1j"], [0], ["2j"]])
    assert complex_arr.dtype == complex
    assert_allclose(complex_arr[:, 0], [1 + 1j, 0, 2j])
    symbolic = to_array(["J", 1, 0])
    assert symbolic.dtype == object
    assert symbolic[0] == sp.Symbol("J")
    assert to_array(None) is None


def test_to_array_real_expression_strings():
    values = to_array(["1/2", "sqrt(3)/2", "0"])
    assert values.dtype == float
    assert_allclose(values, [0.5, np.sqrt(3) / 2, 0.0])
    assert to_array(["1/2", "I/2", 0]).dtype == complex


def test_to_array_ragged():
    with pytest.raises(ValueError):
        to_array([[1, 2, 3], [1, 2]])


# --- MagStructConfig ---
def test_config_defaults():
    config = MagStructConfig.model_validate({"crystal_structure": CRYSTAL})
    assert config.magnetic_structure == {"mode": "random"}
    assert config.seed is None


def test_config_needs_lattice():
    with pytest.raises(ValidationError, match="lattice_parameters"):
        MagStructConfig.model_validate(
            {"crystal_structure": {"atoms_uc": CRYSTAL["atoms_uc"]}}
        )


def test_config_checks_generation_parameters():
    with pytest.raises(ValidationError, match="Wrong mode value"):
        MagStructConfig.model_validate(
            {"crystal_structure": CRYSTAL, "magnetic_structure": {"mode": "spiral"}}
        )


def test_load_config(tmp_path):
    path = tmp_path / "config.yaml"
    data = {
        "crystal_structure": CRYSTAL,
        "magnetic_structure": {"mode": "helical", "S": [1, 0, 0], "k": [0.5, 0, 0], "nExt": [2, 1, 1]},
        "seed": 3,
    }
    path.write_text(yaml.safe_dump(data))
    config = load_config(str(path))
    assert config.seed == 3
    assert config.magnetic_structure["mode"] == "helical"
    assert config.crystal_structure.atoms_uc[0].label == "Ni1"


def test_load_config_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_load_config_bad_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("crystal_structure: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config(str(path))
