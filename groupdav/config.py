"""
Reading of connection settings from config files and the environment.

A config file is a JSON (or YAML) object of named sections.  A section
may inherit the settings of another one:

    {
        "default": {"url": "https://cloud.example.com", "username": "tobias"},
        "work": {"inherits": "default", "password": "app-token"}
    }
"""
import json
import logging
import os

import yaml

from groupdav.lib import error

log = logging.getLogger("groupdav")

## Environment variable -> connection key.  The NEXTCLOUD_ names are
## accepted as aliases, as set up for the Nextcloud command line tools.
ENVIRONMENT_KEYS = {
    "GROUPDAV_URL": "url",
    "GROUPDAV_USERNAME": "username",
    "GROUPDAV_PASSWORD": "password",
    "GROUPDAV_AUTH_TYPE": "auth_type",
    "GROUPDAV_TIMEOUT": "timeout",
    "GROUPDAV_SSL_VERIFY_CERT": "ssl_verify_cert",
    "GROUPDAV_CALENDAR_HOME": "calendar_home",
    "GROUPDAV_ADDRESSBOOK_HOME": "addressbook_home",
    "NEXTCLOUD_URL": "url",
    "NEXTCLOUD_USER": "username",
    "NEXTCLOUD_TOKEN": "password",
}

## short forms accepted in config sections
KEY_ALIASES = {"user": "username", "pass": "password", "token": "password"}


def config_section(config, section="default", _seen=()):
    if section in _seen:
        chain = " -> ".join(_seen + (section,))
        raise error.InvalidInputError(reason=f"config sections inherit in a loop: {chain}")
    if section in config and "inherits" in config[section]:
        ret = config_section(
            config, config[section]["inherits"], _seen + (section,)
        )
    else:
        ret = {}
    if section in config:
        ret.update(config[section])
    ret.pop("inherits", None)
    return ret


def read_config(fn):
    """
    Read a config file, JSON first and YAML if that fails.  Without a
    file name, the default locations are probed and the first file
    found is used.  Returns None if no default file exists, and an
    empty dict if the given file does not exist or is broken.
    """
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config/"
        for config_file in (
            f"{cfgdir}/groupdav/config.json",
            f"{cfgdir}/groupdav/config.yaml",
            "/etc/groupdav/config.json",
        ):
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return None

    try:
        try:
            with open(fn, "rb") as config_file:
                return json.load(config_file)
        except json.decoder.JSONDecodeError:
            try:
                with open(fn, "rb") as config_file:
                    return yaml.load(config_file, yaml.SafeLoader)
            except yaml.YAMLError:
                log.error(
                    f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax."
                )
    except FileNotFoundError:
        log.info("no config file found at %s", fn)
    except ValueError:
        log.error("error in config file.  It will be ignored", exc_info=True)
    return {}


def _coerce(key, value):
    """Environment values are always strings"""
    if not isinstance(value, str):
        return value
    if key == "timeout":
        try:
            return int(value)
        except ValueError as e:
            raise error.InvalidInputError(
                reason=f"{key} must be a number of seconds, got {value!r}"
            ) from e
    if key in ("ssl_verify_cert", "huge_tree"):
        if value.lower() in ("0", "false", "no", "off"):
            return False
        if value.lower() in ("1", "true", "yes", "on"):
            return True
        ## ssl_verify_cert may be the path of a CA bundle
        return value
    return value


def environment_params(environ=None):
    """Connection parameters found in the environment"""
    if environ is None:
        environ = os.environ
    conf = {}
    ## GROUPDAV_ settings win over the NEXTCLOUD_ aliases
    for env_key, key in reversed(list(ENVIRONMENT_KEYS.items())):
        if environ.get(env_key):
            conf[key] = _coerce(key, environ[env_key])
    return conf


def section_params(section, connkeys):
    """Connection parameters from a config section.  Keys may carry a
    ``groupdav_`` prefix, unknown keys are ignored."""
    conn_params = {}
    for k in section:
        key = k[9:] if k.startswith("groupdav_") else k
        key = KEY_ALIASES.get(key, key)
        if key in connkeys and section[k] is not None:
            conn_params[key] = _coerce(key, section[k])
    return conn_params
