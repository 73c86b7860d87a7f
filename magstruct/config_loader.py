#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration loading for pyMagStruct.

Reads a YAML file and validates it against the pydantic schema.
"""
import logging
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .schema import MagStructConfig

logger = logging.getLogger(__name__)


def read_yaml(filepath: str) -> Dict[str, Any]:
    """
    Read a YAML file into a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid YAML or not a mapping.
    """
    try:
        with open(filepath, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {filepath}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file {filepath}: {e}")
        raise ValueError(f"Invalid YAML format in {filepath}") from e

    if not isinstance(data, dict):
        msg = f"Configuration file {filepath} must contain a mapping at top level."
        logger.error(msg)
        raise ValueError(msg)
    return data


def load_config(filepath: str) -> MagStructConfig:
    """
    Load and validate a magnetic structure configuration.

    Args:
        filepath (str): Path to the YAML configuration file.

    Returns:
        MagStructConfig: The validated configuration.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: For invalid YAML or a configuration that fails
            validation (pydantic's ValidationError is a ValueError).
    """
    logger.info(f"Loading magnetic structure configuration from: {filepath}")
    data = read_yaml(filepath)
    try:
        config = MagStructConfig.model_validate(data)
    except ValidationError as e:
        logger.error(f"Configuration {filepath} failed validation: {e}")
        raise
    logger.info("Configuration loaded and validated.")
    return config
