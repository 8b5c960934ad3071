from wholesale_pricing.config.settings import TIER_CONFIG, Settings


def test_defaults(tmp_path, monkeypatch):
    for name in ('WHOLESALE_DATA_DIR', 'WHOLESALE_TAX_RATE', 'WHOLESALE_QUOTE_VALIDITY_DAYS'):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.load(project_root=tmp_path)

    assert settings.tax_rate == 9.0
    assert settings.quote_validity_days == 30
    assert settings.catalog_csv == tmp_path / 'data' / 'catalog.csv'
    assert settings.tiers == TIER_CONFIG


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv('WHOLESALE_DATA_DIR', str(tmp_path / 'fixtures'))
    monkeypatch.setenv('WHOLESALE_TAX_RATE', '7.5')
    monkeypatch.setenv('WHOLESALE_EXPIRING_WINDOW_DAYS', '5')
    monkeypatch.setenv('WHOLESALE_LOG_LEVEL', 'debug')

    settings = Settings.load(project_root=tmp_path)

    assert settings.tax_rate == 7.5
    assert settings.expiring_window_days == 5
    assert settings.log_level == 'DEBUG'
    assert settings.price_lists_json == tmp_path / 'fixtures' / 'price_lists.json'


def test_blank_env_values_use_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv('WHOLESALE_TAX_RATE', ' ')
    assert Settings.load(project_root=tmp_path).tax_rate == 9.0
