import importlib


def test_config_defaults(monkeypatch):
    for var in ("VDR_SPEED_MULTIPLIER", "VDR_BATCH_SIZE", "VDR_USE_PRIMARY_SOURCE", "VDR_NMEA0183_PUB_EP"):
        monkeypatch.delenv(var, raising=False)
    cfg = importlib.reload(__import__("config"))
    assert cfg.DEFAULT_SPEED_MULTIPLIER == 1.0
    assert cfg.BATCH_SIZE == 10
    assert cfg.BATCH_INTERVAL_MS == 1000
    assert cfg.USE_PRIMARY_SOURCE is True
    assert cfg.NMEA0183_PUB_ENDPOINT.startswith("tcp://")


def test_config_env_overrides(monkeypatch):
    monkeypatch.setenv("VDR_SPEED_MULTIPLIER", "5000")
    monkeypatch.setenv("VDR_BATCH_SIZE", "not-a-number")
    monkeypatch.setenv("VDR_USE_PRIMARY_SOURCE", "0")
    cfg = importlib.reload(__import__("config"))
    assert cfg.DEFAULT_SPEED_MULTIPLIER == cfg.SPEED_MAX
    assert cfg.BATCH_SIZE == 10
    assert cfg.USE_PRIMARY_SOURCE is False

    monkeypatch.undo()
    importlib.reload(cfg)
