"""Config management."""

import json
import logging
import os.path


DEFAULT_CONFIG = {
    "connect_timeout": 10,
    "read_timeout": 30,
    "max_redirects": 5,
    "trust_policy": "tofu",
    "default_input_prompt": "Input needed",
}

TRUST_POLICIES = ("tofu", "accept_all")


def load_config(config_path):
    if not os.path.isfile(config_path):
        create_default_config(config_path)
        return dict(DEFAULT_CONFIG)

    try:
        with open(config_path, "rt") as config_file:
            config = json.load(config_file)
    except OSError as exc:
        logging.error(f"Could not read config file {config_path}: {exc}")
    except ValueError as exc:
        logging.error(f"Could not parse config file {config_path}: {exc}")
    else:
        if not isinstance(config, dict):
            logging.error(f"Config file {config_path} is not an object.")
            return dict(DEFAULT_CONFIG)
        # Fill missing values with defaults.
        for key, value in DEFAULT_CONFIG.items():
            if key not in config:
                config[key] = value
        if config["trust_policy"] not in TRUST_POLICIES:
            logging.error(f"Unknown trust policy {config['trust_policy']}.")
            config["trust_policy"] = DEFAULT_CONFIG["trust_policy"]
        return config
    return dict(DEFAULT_CONFIG)


def create_default_config(config_path):
    try:
        with open(config_path, "wt") as config_file:
            json.dump(DEFAULT_CONFIG, config_file, indent=2)
    except OSError as exc:
        logging.error(f"Could not create config file {config_path}: {exc}")
