"""
Unit tests for keyring-backed API key storage.

All tests mock the keyring to avoid system dependencies.
"""

from unittest.mock import MagicMock, patch

from keyring.errors import KeyringError, PasswordDeleteError

import calltagger.utils.secrets as secrets_module


class TestGetApiKey:

    def test_get_api_key_success(self):
        mock_keyring = MagicMock()
        mock_keyring.get_password.return_value = "sk-test-key-123"

        with patch.object(secrets_module, "keyring", mock_keyring):
            result = secrets_module.get_api_key("openai")

        assert result == "sk-test-key-123"
        mock_keyring.get_password.assert_called_once_with("calltagger", "openai_api_key")

    def test_get_api_key_not_found(self):
        mock_keyring = MagicMock()
        mock_keyring.get_password.return_value = None

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.get_api_key("anthropic") is None

    def test_get_api_key_backend_error(self):
        mock_keyring = MagicMock()
        mock_keyring.get_password.side_effect = KeyringError("locked")

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.get_api_key("gemini") is None


class TestSetApiKey:

    def test_set_api_key_success(self):
        mock_keyring = MagicMock()

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.set_api_key("openai", "sk-new") is True

        mock_keyring.set_password.assert_called_once_with("calltagger", "openai_api_key", "sk-new")

    def test_set_api_key_failure(self):
        mock_keyring = MagicMock()
        mock_keyring.set_password.side_effect = KeyringError("no backend")

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.set_api_key("openai", "sk-new") is False


class TestDeleteApiKey:

    def test_delete_api_key_success(self):
        mock_keyring = MagicMock()

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.delete_api_key("openai") is True

        mock_keyring.delete_password.assert_called_once_with("calltagger", "openai_api_key")

    def test_delete_missing_key(self):
        mock_keyring = MagicMock()
        mock_keyring.delete_password.side_effect = PasswordDeleteError("missing")

        with patch.object(secrets_module, "keyring", mock_keyring):
            assert secrets_module.delete_api_key("openai") is False
