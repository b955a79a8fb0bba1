import pytest
import tempfile
import os

from industry_news.utils.config import Config, get_config

CONFIG_YAML = '''
database:
  path: data/test.db
llm:
  api_key: ${TEST_LLM_KEY}
  model: GLM-4-Flash
collection:
  article_limit: 5
industries:
  - name: 数据中心
    slug: data-center
sources:
  - name: A
    url: https://a.example.com/
'''


class TestConfig:
    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self.temp_dir.name, 'config.yaml')
        with open(self.config_path, 'w', encoding='utf-8') as f:
            f.write(CONFIG_YAML)

    def teardown_method(self):
        self.temp_dir.cleanup()

    def test_sections(self, monkeypatch):
        monkeypatch.delenv('TEST_LLM_KEY', raising=False)
        config = Config(self.config_path)

        assert config.get('database.path') == 'data/test.db'
        assert config.get('database.missing', 'x') == 'x'
        assert config.get_collection_config() == {'article_limit': 5}
        assert config.get_industries()[0]['slug'] == 'data-center'
        assert config.get_sources()[0]['url'] == 'https://a.example.com/'
        assert config.get_scheduling_config() == {}
        # Unset variables are left as-is so the LLM client can tell it is unconfigured
        assert config.get_llm_config()['api_key'] == '${TEST_LLM_KEY}'

    def test_env_substitution(self, monkeypatch):
        monkeypatch.setenv('TEST_LLM_KEY', 'secret-key')

        assert Config(self.config_path).get('llm.api_key') == 'secret-key'

    def test_env_file(self, monkeypatch):
        monkeypatch.delenv('TEST_LLM_KEY', raising=False)
        with open(os.path.join(self.temp_dir.name, '.env'), 'w', encoding='utf-8') as f:
            f.write('# local settings\nTEST_LLM_KEY="from-dotenv"\n')

        try:
            assert Config(self.config_path).get('llm.api_key') == 'from-dotenv'
        finally:
            os.environ.pop('TEST_LLM_KEY', None)

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            Config(os.path.join(self.temp_dir.name, 'nope.yaml'))

    def test_invalid_yaml(self):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            f.write('sources: [unclosed')

        with pytest.raises(ValueError):
            Config(self.config_path)

    def test_get_config_uses_env_path(self, monkeypatch):
        monkeypatch.setenv('CONFIG_PATH', self.config_path)

        assert get_config().config_path == self.config_path
