"""Settings library for the client configuration.

Provides:
    - Schema validation and enforcement for client.json structure.
    - Loading, saving, reverting, and managing client settings.
    - The paths of the persisted credential and the config template.
"""

import json
import logging
import pathlib
import shutil
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'ExpenseSplitter'

SAME_SITE_VALUES: List[str] = ['lax', 'strict', 'none']

CLIENT_SCHEMA: Dict[str, Any] = {
    'api': {
        'type': dict,
        'required': True,
        'item_schema': {
            'base_url': {'type': str, 'required': True},
        }
    },
    'session': {
        'type': dict,
        'required': True,
        'item_schema': {
            'ttl_days': {'type': int, 'required': True},
            'path': {'type': str, 'required': True},
            'same_site': {'type': str, 'required': True, 'allowed_values': SAME_SITE_VALUES},
        }
    },
    'metadata': {
        'type': dict,
        'required': True,
        'item_schema': {
            'locale': {'type': str, 'required': True},
            'currency': {'type': str, 'required': True},
        }
    },
}


def _validate_section(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate the fields of one section against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section's data.
        item_schema: Dict describing required fields, types and allowed values.

    Raises:
        status.ConfigInvalidException: If a field is missing, of the wrong type or not allowed.
    """
    logging.debug(f'Validating "{section_name}" section.')
    for field, field_specs in item_schema.items():
        if field_specs['required'] and field not in section:
            raise status.ConfigInvalidException(f'Section "{section_name}" missing "{field}".')
        if field not in section:
            continue

        value = section[field]
        # bool is an int subclass, but never a valid ttl
        if isinstance(value, bool) or not isinstance(value, field_specs['type']):
            raise status.ConfigInvalidException(
                f'Section "{section_name}" field "{field}" must be {field_specs["type"]}, got {type(value)}.'
            )

        allowed = field_specs.get('allowed_values')
        if allowed and value not in allowed:
            raise status.ConfigInvalidException(
                f'Section "{section_name}" field "{field}" must be one of {allowed}, got "{value}".'
            )

    if section_name == 'api' and not section['base_url'].startswith(('http://', 'https://')):
        raise status.ConfigInvalidException(f'api.base_url must be an http(s) URL, got "{section["base_url"]}".')
    if section_name == 'session' and section['ttl_days'] <= 0:
        raise status.ConfigInvalidException('session.ttl_days must be positive.')


class ConfigPaths:
    """Manage client file paths and ensure the default config exists.

    Paths live under the Qt ``AppDataLocation`` of the application. The bundled
    ``client.json.template`` is copied into place on first use.
    """

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.client_template: pathlib.Path = self.template_dir / 'client.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'
        self.report_dir: pathlib.Path = app_data_dir / 'reports'

        self.client_path: pathlib.Path = self.config_dir / 'client.json'
        self.token_path: pathlib.Path = self.auth_dir / 'token.json'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists and create the config directories and file.

        Raises:
            FileNotFoundError: If the bundled template is missing.
        """
        logging.debug(f'Verifying required templates in {self.template_dir}')
        if not self.client_template.exists():
            msg = f'Missing client template: {self.client_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        for directory in (self.config_dir, self.auth_dir, self.report_dir):
            if not directory.exists():
                logging.debug(f'Creating directory: {directory}')
                directory.mkdir(parents=True, exist_ok=True)

        if not self.client_path.exists():
            logging.debug(f'Copying default client config from template to {self.client_path}')
            shutil.copy(self.client_template, self.client_path)

    def revert_client_to_template(self) -> None:
        """Restore client.json from the default template file."""
        logging.debug(f'Reverting client config to template: {self.client_template}')
        shutil.copy(self.client_template, self.client_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save client.json sections.
    """

    def __init__(self, client_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the client config.

        Args:
            client_path: Optional path to a custom client.json file.
        """
        super().__init__()

        self.client_path: pathlib.Path = pathlib.Path(client_path) if client_path else self.client_path

        self.client_data: Dict[str, Any] = {}
        for k in CLIENT_SCHEMA.keys():
            self.client_data[k] = {}

        self.load_client()

    @property
    def base_url(self) -> str:
        """Backend base URL without a trailing slash."""
        return self.client_data['api']['base_url'].rstrip('/')

    @property
    def ttl_days(self) -> int:
        """Credential lifetime in days."""
        return self.client_data['session']['ttl_days']

    def load_client(self) -> Dict[str, Any]:
        """Load client.json from disk and validate against schema.

        Returns:
            The loaded client data dictionary.

        Raises:
            status.ConfigNotFoundException: If client.json is missing.
            status.ConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading client config from "{self.client_path}"')
        if not self.client_path.exists():
            raise status.ConfigNotFoundException

        try:
            with self.client_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (ValueError, json.JSONDecodeError) as ex:
            raise status.ConfigInvalidException(f'Could not parse "{self.client_path}".') from ex

        self.validate_client_data(data)
        self.client_data = data
        return self.client_data

    def validate_client_data(self, data: Dict[str, Any] = None) -> None:
        """Validate client data against CLIENT_SCHEMA.

        Args:
            data (dict, optional): Data to validate. Defaults to self.client_data.

        Raises:
            status.ConfigInvalidException: If a required section is missing or validation fails.
        """
        if data is None:
            data = self.client_data
        if not isinstance(data, dict) or not data:
            raise status.ConfigInvalidException('Client config is empty.')

        logging.debug('Validating client data against schema.')
        for field, specs in CLIENT_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.ConfigInvalidException(f'Missing required field: {field}')
            if field not in data:
                continue
            if not isinstance(data[field], specs['type']):
                raise status.ConfigInvalidException(
                    f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.'
                )
            _validate_section(field, data[field], specs['item_schema'])

        logging.debug('Client data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a configuration section.

        Raises:
            KeyError: If section_name is not in client_data.
        """
        return self.client_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a configuration section.

        The previous value is restored when validation fails.

        Raises:
            ValueError: If section_name is unrecognized.
            status.ConfigInvalidException: If the new data does not validate.
        """
        if section_name not in self.client_data:
            msg = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.client_data[section_name].copy()
        self.client_data[section_name] = new_data
        try:
            self.validate_client_data()
        except status.ConfigInvalidException:
            logging.error(f'Validation error on set_section("{section_name}"), rolling back.')
            self.client_data[section_name] = current_section_data
            raise
        self.save_section(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Raises:
            ValueError: If section_name is not present in the template.
        """
        with self.client_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.client_data[section_name] = template_data[section_name]
        self.save_section(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to client.json.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in self.client_data:
            msg = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.client_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.client_data[section_name]

        with self.client_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)
        logging.debug(f'Saved section "{section_name}" to "{self.client_path}"')
