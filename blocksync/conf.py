import os
import typing
import logging
from argparse import ArgumentParser

import yaml
from appdirs import user_data_dir

from blocksync.block import DEFAULT_BLOCK_SIZE
from blocksync.error import ConfigReadError, InvalidSettingError

log = logging.getLogger(__name__)


NOT_SET = type('NOT_SET', (object,), {})  # pylint: disable=invalid-name
T = typing.TypeVar('T')


class Setting(typing.Generic[T]):
    """
    Descriptor for one option of a config class. Reading walks the sources of the config in
    priority order and falls back to the default, assigning validates the value and stores it
    in every writable source. Assigning NOT_SET removes the value again.
    """

    expected = 'a value'

    def __init__(self, doc: str, default: typing.Optional[T] = None,
                 previous_names: typing.Optional[typing.List[str]] = None,
                 metavar: typing.Optional[str] = None):
        self.doc = doc
        self.default = default
        self.previous_names = previous_names or []
        self.metavar = metavar

    def __set_name__(self, owner, name):
        self.name = name  # pylint: disable=attribute-defined-outside-init

    @property
    def flag(self) -> str:
        return '--' + self.name.replace('_', '-')

    def __get__(self, obj: typing.Optional['BaseConfig'], owner) -> T:
        if obj is None:
            return self
        for source in obj.search_order:
            if self.name in source:
                return source[self.name]
        return self.default

    def __set__(self, obj: 'BaseConfig', value: typing.Union[T, NOT_SET]):
        if value is NOT_SET:
            for source in obj.modify_order:
                if self.name in source:
                    del source[self.name]
            return
        self.validate(value)
        for source in obj.modify_order:
            source[self.name] = value

    def is_valid(self, value) -> bool:
        raise NotImplementedError()

    def validate(self, value):
        if not self.is_valid(value):
            raise InvalidSettingError(self.name, value, self.expected)

    def parse(self, value) -> T:
        """ Convert a value read from the environment, the command line or a config file """
        return value

    def dump(self, value):
        return value

    def contribute_to_argparse(self, parser: ArgumentParser):
        parser.add_argument(self.flag, help=self.doc, metavar=self.metavar, default=NOT_SET)


class String(Setting[str]):
    expected = 'a string'

    def is_valid(self, value):
        return isinstance(value, str)


class Integer(Setting[int]):
    expected = 'an integer'

    def is_valid(self, value):
        return isinstance(value, int) and not isinstance(value, bool)

    def parse(self, value):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidSettingError(self.name, value, self.expected)


class PositiveInteger(Integer):
    expected = 'a positive integer'

    def is_valid(self, value):
        return super().is_valid(value) and value > 0


class Float(Setting[float]):
    expected = 'a number'

    def is_valid(self, value):
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    def parse(self, value):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidSettingError(self.name, value, self.expected)


class Toggle(Setting[bool]):
    expected = 'true or false'
    truthy = ('1', 'true', 'yes', 'on')
    falsy = ('0', 'false', 'no', 'off')

    def is_valid(self, value):
        return isinstance(value, bool)

    def parse(self, value):
        if isinstance(value, str):
            if value.lower() in self.truthy:
                return True
            if value.lower() in self.falsy:
                return False
        if not isinstance(value, bool):
            raise InvalidSettingError(self.name, value, self.expected)
        return value

    def contribute_to_argparse(self, parser: ArgumentParser):
        parser.add_argument(self.flag, help=self.doc, action="store_true", default=NOT_SET)
        parser.add_argument(
            '--no-' + self.flag[2:], help=f"Opposite of {self.flag}", dest=self.name,
            action="store_false", default=NOT_SET
        )


class Path(String):
    def __init__(self, doc: str, *args, default: str = '', **kwargs):
        super().__init__(doc, default, *args, **kwargs)

    def __get__(self, obj, owner) -> str:
        value = super().__get__(obj, owner)
        if isinstance(value, str):
            return os.path.expanduser(os.path.expandvars(value))
        return value


class StringChoice(String):
    def __init__(self, doc: str, choices: typing.List[str], default: str, *args, **kwargs):
        super().__init__(doc, default, *args, **kwargs)
        if not choices:
            raise ValueError("No valid values provided")
        if default not in choices:
            raise ValueError(f"Default value must be one of: {', '.join(choices)}")
        self.choices = choices
        self.expected = f"one of: {', '.join(choices)}"

    def is_valid(self, value):
        return super().is_valid(value) and value in self.choices

    def contribute_to_argparse(self, parser: ArgumentParser):
        parser.add_argument(self.flag, help=self.doc, choices=self.choices, default=NOT_SET)


class SettingsSource:
    """
    Values for some of the settings of a config, keyed by setting name
    """

    def __init__(self):
        self.data = {}

    def __contains__(self, name: str):
        return name in self.data

    def __getitem__(self, name: str):
        return self.data[name]

    def __setitem__(self, name: str, value):
        self.data[name] = value

    def __delitem__(self, name: str):
        del self.data[name]


class EnvironmentSource(SettingsSource):
    PREFIX = 'BLOCKSYNC_'

    def __init__(self, settings: typing.Iterable[Setting], environ: typing.Mapping[str, str]):
        super().__init__()
        for setting in settings:
            raw = environ.get(self.PREFIX + setting.name.upper())
            if raw is not None:
                value = setting.parse(raw)
                setting.validate(value)
                self.data[setting.name] = value


class ArgumentSource(SettingsSource):

    def __init__(self, settings: typing.Iterable[Setting], args):
        super().__init__()
        for setting in settings:
            value = getattr(args, setting.name, NOT_SET)
            if value is not NOT_SET:
                value = setting.parse(value)
                setting.validate(value)
                self.data[setting.name] = value


class ConfigFile(SettingsSource):
    """
    Settings persisted in a YAML file. Keys using a previous name of a setting are read and
    renamed by upgrade(), unknown keys are ignored.
    """

    def __init__(self, settings: typing.Iterable[Setting], path: str):
        super().__init__()
        self.path = path
        self.settings = {setting.name: setting for setting in settings}
        self.renamed = {
            previous: setting for setting in self.settings.values() for previous in setting.previous_names
        }
        if self.exists:
            self.load()

    @property
    def exists(self) -> bool:
        return bool(self.path) and os.path.exists(self.path)

    def load(self):
        with open(self.path, 'r') as config_file:
            stored = yaml.safe_load(config_file) or {}
        for key, value in stored.items():
            setting = self.settings.get(key) or self.renamed.get(key)
            if setting is None:
                log.warning("ignoring unknown setting '%s' in %s", key, self.path)
                continue
            value = setting.parse(value)
            setting.validate(value)
            self.data[key] = value

    def upgrade(self) -> bool:
        previous = [key for key in self.data if key in self.renamed]
        for key in previous:
            self.data[self.renamed[key].name] = self.data.pop(key)
        return bool(previous)

    def save(self):
        stored = {key: self.settings[key].dump(value) for key, value in self.data.items()}
        with open(self.path, 'w') as config_file:
            yaml.safe_dump(stored, config_file, default_flow_style=False)


TBC = typing.TypeVar('TBC', bound='BaseConfig')


class BaseConfig:

    config = Path("Path to configuration file.", metavar='FILE')

    def __init__(self, **kwargs):
        self.runtime = {}      # assigned in code
        self.arguments = {}    # command line
        self.environment = {}  # BLOCKSYNC_* variables
        self.persisted = {}    # config file
        for key, value in kwargs.items():
            setattr(self, key, value)

    @property
    def modify_order(self):
        return [self.runtime]

    @property
    def search_order(self):
        return [self.runtime, self.arguments, self.environment, self.persisted]

    @classmethod
    def get_settings(cls) -> typing.Iterator[Setting]:
        for attr in dir(cls):
            setting = getattr(cls, attr)
            if isinstance(setting, Setting):
                yield setting

    @property
    def settings_dict(self):
        return {setting.name: getattr(self, setting.name) for setting in self.get_settings()}

    @classmethod
    def create_from_arguments(cls: typing.Type[TBC], args) -> TBC:
        conf = cls()
        conf.set_arguments(args)
        conf.set_environment()
        conf.set_persisted()
        return conf

    @classmethod
    def contribute_to_argparse(cls, parser: ArgumentParser):
        for setting in cls.get_settings():
            setting.contribute_to_argparse(parser)

    def set_arguments(self, args):
        self.arguments = ArgumentSource(self.get_settings(), args)

    def set_environment(self, environ=None):
        self.environment = EnvironmentSource(self.get_settings(), environ or os.environ)

    def set_persisted(self, config_file_path=None):
        """
        Load the config file, by default the one the `config` setting points to. A path given
        here explicitly has to exist.
        """
        path = self.config if config_file_path is None else config_file_path
        if not path:
            return
        ext = os.path.splitext(path)[1]
        if ext not in ('.yml', '.yaml'):
            raise InvalidSettingError('config', path, 'a YAML (.yml or .yaml) file')
        if config_file_path is not None and not os.path.isfile(path):
            raise ConfigReadError(path)
        self.persisted = ConfigFile(self.get_settings(), path)
        if self.persisted.upgrade():
            self.persisted.save()


class Config(BaseConfig):
    # directories
    data_dir = Path("Directory path to store the log file and default configuration.", metavar='DIR')
    download_dir = Path(
        "Directory path to place synchronized files received from a source.", default='.', metavar='DIR'
    )

    # network
    tcp_port = Integer("TCP port the source listens on and the destination connects to", 3333, metavar='PORT')
    network_interface = String("Interface the source listens on", '0.0.0.0')
    peer_connect_timeout = Float("Timeout to establish a TCP connection to a source", 10.0)

    # protocol
    block_size = PositiveInteger(
        "Size in bytes of the blocks compared and transferred. It is not negotiated, both peers must use the "
        "same value or every block will be transferred.", DEFAULT_BLOCK_SIZE, previous_names=['chunk_size']
    )
    max_file_size = Integer(
        "Refuse files larger than this many bytes announced by a source (0 to disable).", 2 ** 40
    )
    precompute_checksums = Toggle(
        "Calculate source checksums once at startup and reuse them for every connection, otherwise they are "
        "calculated for each connection.", True
    )

    # reconnecting
    reconnect_delay = Float("Seconds to wait before reconnecting after a failed sync", 2.0)
    retry_strategy = StringChoice(
        "Delay between reconnect attempts: the same every time or doubling up to max_reconnect_delay",
        ["fixed", "exponential"], "fixed"
    )
    max_reconnect_delay = Float("Longest delay between reconnect attempts with exponential retries", 60.0)
    max_reconnect_attempts = Integer("Give up after this many failed attempts (0 to retry forever)", 0)

    # metrics
    prometheus_port = Integer("Port to expose prometheus metrics (off by default)", 0)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.set_default_paths()

    def set_default_paths(self):
        cls = type(self)
        cls.data_dir.default = user_data_dir('blocksync')
        cls.config.default = os.path.join(self.data_dir, 'settings.yml')

    @property
    def log_file_path(self):
        return os.path.join(self.data_dir, 'blocksync.log')
