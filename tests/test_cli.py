from __future__ import annotations

import json

CONFIG = """
kubernetes:
  clusterLocatorMethods:
    - type: config
      clusters:
        - name: prod
          kwirthHome: http://kwirth.prod
          kwirthApiKey: key
          kwirthLog:
            namespacePermissions:
              - prod: ["group:default/sre"]
            podPermissions:
              - prod:
                  allow:
                    - pods: ["^api-"]
"""


def _write(tmp_path, text: str = CONFIG):
    p = tmp_path / "app-config.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_validate_prints_summary(tmp_path, capsys) -> None:
    import main

    rc = main.main(["--validate", "--config", _write(tmp_path)])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["ok"] is True
    assert out["clusters"]["prod"]["log"] == {"namespaces": 1, "podPermissions": 1}
    assert out["clusters"]["prod"]["alert"] == {"namespaces": 0, "podPermissions": 0}
    assert "ops" not in out["clusters"]["prod"]


def test_validate_rejects_bad_pattern(tmp_path, capsys) -> None:
    import main

    rc = main.main(["--validate", "--config", _write(tmp_path, CONFIG.replace("^api-", "(api"))])
    assert rc == 2
    assert "Invalid configuration" in capsys.readouterr().err


def test_validate_missing_file(tmp_path) -> None:
    import main

    assert main.main(["--validate", "--config", str(tmp_path / "nope.yaml")]) == 2


def test_check_allowed_and_denied(tmp_path, capsys) -> None:
    import main

    path = _write(tmp_path)
    base = ["--check", "--config", path, "--cluster", "prod", "--channel", "log", "--namespace", "prod"]

    rc = main.main(base + ["--workload", "api-7", "--identity", "user:default/alice", "--group", "group:default/sre"])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["allowed"] is True and out["namespaceRestricted"] is True

    rc = main.main(base + ["--workload", "web-1", "--identity", "user:default/alice", "--group", "group:default/sre"])
    assert rc == 1
    capsys.readouterr()

    rc = main.main(base + ["--workload", "api-7", "--identity", "user:default/alice"])
    assert rc == 1
    assert json.loads(capsys.readouterr().out)["namespaceAllowed"] is False


def test_check_unknown_channel_and_cluster(tmp_path, capsys) -> None:
    import main

    path = _write(tmp_path)
    rc = main.main(
        ["--check", "--config", path, "--cluster", "prod", "--channel", "trivy", "--namespace", "x"]
        + ["--workload", "w", "--identity", "user:default/alice"]
    )
    assert rc == 1
    assert json.loads(capsys.readouterr().out)["diagnostic"] == "Invalid channel: trivy"

    rc = main.main(
        ["--check", "--config", path, "--cluster", "qa", "--channel", "log", "--namespace", "x"]
        + ["--workload", "w", "--identity", "user:default/alice"]
    )
    assert rc == 2


def test_validate_undecodable_file(tmp_path, capsys) -> None:
    import main

    p = tmp_path / "app-config.yaml"
    p.write_bytes(CONFIG.encode("utf-8") + b"# \xff\xfe\n")
    assert main.main(["--validate", "--config", str(p)]) == 2
    assert "Invalid configuration" in capsys.readouterr().err
