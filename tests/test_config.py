from mpt_workload.config import config_file, load_config
from mpt_workload.logging_config import build_logging_config


def test_defaults_without_env():
    conf = load_config(environ={})
    assert conf["network"]["url"].startswith("wss://")
    assert conf["identities"] == {}
    assert conf["issuance"]["metadata"]["ticker"] == "DDT"
    assert conf["transfer"]["amount"] == "1000"


def test_env_overrides():
    conf = load_config(environ={
        "MPT_NETWORK_URL": "http://localhost:5005",
        "MPT_ISSUER_SEED": "sEdIssuer",
        "MPT_TRANSFER_AMOUNT": "25",
        "UNRELATED": "x",
    })
    assert conf["network"]["url"] == "http://localhost:5005"
    assert conf["identities"] == {"issuer_seed": "sEdIssuer"}
    assert conf["transfer"]["amount"] == "25"


def test_empty_env_value_is_ignored():
    conf = load_config(environ={"MPT_NETWORK_URL": ""})
    assert conf["network"]["url"] == load_config(environ={})["network"]["url"]


def test_alternate_file(tmp_path):
    alt = tmp_path / "alt.toml"
    alt.write_text(config_file.read_text().replace('amount = "1000"', 'amount = "7"'))
    assert load_config(alt, environ={})["transfer"]["amount"] == "7"


def test_logging_config_console_only():
    conf = build_logging_config("debug", log_file="")
    assert list(conf["handlers"]) == ["console"]
    assert conf["loggers"]["mpt_workload"]["level"] == "DEBUG"
    assert conf["loggers"]["xrpl"]["handlers"] == ["console"]


def test_logging_config_with_file(tmp_path):
    conf = build_logging_config(log_file=str(tmp_path / "run.log"))
    assert conf["handlers"]["file"]["filename"].endswith("run.log")
    assert conf["root"]["handlers"] == ["console", "file"]
