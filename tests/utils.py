"""
Helper functions to make writing unit tests for the Gather core easier
"""

import os
import sys
import enum
import random
import string
import secrets
import unittest
import subprocess
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

import pydantic
import requests
import sqlalchemy.orm
from sqlalchemy.engine import Engine as _Engine

from gather_core import schemas as _schemas, settings as _settings
from gather_core.api import dependency
from gather_core.persistence import models

from . import conf


class DatabaseType(enum.IntEnum):
    """
    Enum to simply determine which database is currently in use
    """

    SQLITE = enum.auto()
    MYSQL = enum.auto()
    POSTGRES = enum.auto()


class BaseTest(unittest.TestCase):
    """
    A base class for unit tests which introduces simple setup and teardown of unit tests

    If a subclass needs special setup or teardown functionality, it **MUST**
    call the superclasses setup and teardown methods: the superclass setup
    method at the beginning of the subclass setup method, the superclass
    teardown method at the end of the subclass teardown method.
    """

    config_file: Optional[str] = None
    database_url: Optional[str] = None
    database_type: Optional[DatabaseType] = None
    _database_file: Optional[str] = None

    def setUp(self) -> None:
        self.config_file = f"config_{os.getpid()}_{secrets.token_hex(8)}.json"
        _settings.CONFIG_PATHS = [self.config_file]

        if conf.DATABASE_URL is not None:
            self.database_url = conf.DATABASE_URL
            for k in ["COMMAND_INITIALIZE_DATABASE", "COMMAND_CLEANUP_DATABASE"]:
                if getattr(conf, k, None) is None:
                    print(
                        f"{k!r} has not been set (value: None)! This config value "
                        "is mandatory for non-default databases. Any unittest may fail. "
                        "But if you really need no script(s), set it to an empty list.",
                        file=sys.stderr
                    )
                    sys.exit(1)

            if conf.COMMAND_INITIALIZE_DATABASE:
                subprocess.run(conf.COMMAND_INITIALIZE_DATABASE)

        else:
            self._database_file = conf.DATABASE_DEFAULT_FILE_FORMAT.format(
                os.getpid(),
                "".join([random.choice(string.ascii_lowercase) for _ in range(6)])
            )

            try:
                open(self._database_file, "wb").close()
                os.remove(self._database_file)
                self.database_url = conf.DATABASE_URL_FORMAT.format(self._database_file)

            except OSError as exc:
                self.database_url = conf.DATABASE_FALLBACK_URL
                self._database_file = None
                print(
                    f"{exc}: Falling back to in-memory database. This is not recommended!",
                    file=sys.stderr
                )

        if self.database_url.startswith("sqlite"):
            self.database_type = DatabaseType.SQLITE
        elif self.database_url.startswith("mysql"):
            self.database_type = DatabaseType.MYSQL
        elif self.database_url.startswith("postgresql"):
            self.database_type = DatabaseType.POSTGRES
        else:
            print(
                f"Unknown scheme in URL {self.database_url!r}. Unittests may fail later.",
                file=sys.stderr
            )

    def tearDown(self) -> None:
        if conf.DATABASE_URL is not None and conf.COMMAND_CLEANUP_DATABASE:
            subprocess.run(conf.COMMAND_CLEANUP_DATABASE)

        elif self.database_url != conf.DATABASE_FALLBACK_URL and self._database_file:
            if os.path.exists(self._database_file):
                os.remove(self._database_file)

        if self.config_file and os.path.exists(self.config_file):
            os.remove(self.config_file)

    def get_db_session(self) -> sqlalchemy.orm.Session:
        opts = {"echo": conf.SQLALCHEMY_ECHOING}
        if self.database_url.startswith("sqlite:"):
            opts = {"connect_args": {"check_same_thread": False}}
        engine = sqlalchemy.create_engine(self.database_url, **opts)
        return sqlalchemy.orm.sessionmaker(autoflush=False, bind=engine)()

    def write_config(self, **sections) -> _schemas.config.CoreConfig:
        """
        Write a config file for the current test using the test database, overwriting the given sections
        """

        config = _settings.get_default_core_config(self.database_url)
        config.database.debug_sql = conf.SQLALCHEMY_ECHOING
        if conf.SERVER_LOGGING_OVERWRITE:
            config.logging = _schemas.config.LoggingConfig(**conf.SERVER_LOGGING_OVERWRITE)
        for key, value in sections.items():
            setattr(config, key, value)
        with open(self.config_file, "w") as f:
            f.write(config.model_dump_json())
        return config


class BasePersistenceTests(BaseTest):
    engine: _Engine
    session: sqlalchemy.orm.Session

    def setUp(self) -> None:
        super().setUp()
        opts = {"echo": conf.SQLALCHEMY_ECHOING}
        if self.database_url.startswith("sqlite:"):
            opts = {"connect_args": {"check_same_thread": False}}
        self.engine = sqlalchemy.create_engine(self.database_url, **opts)
        self.session = sqlalchemy.orm.sessionmaker(autoflush=False, bind=self.engine)()
        models.Base.metadata.create_all(bind=self.engine)
        self.write_config()

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()
        super().tearDown()

    @staticmethod
    def get_sample_users() -> List[models.User]:
        return [
            models.User(name="alice", auth_token_digest="a" * 64),
            models.User(name="bob", auth_token_digest="b" * 64),
            models.User(name=None, auth_token_digest="c" * 64),
            models.User(name="dave", auth_token_digest="d" * 64, active=False)
        ]


class BaseAPITests(BaseTest):
    api_version_format: str = "/v{}"
    _latest_api_version: Optional[int] = None

    server_port: Optional[int] = None
    server_process: Optional[subprocess.Popen] = None

    app_secret: Optional[str] = None
    token: Optional[str] = None

    @property
    def server(self) -> str:
        return f"http://127.0.0.1:{self.server_port}/"

    @property
    def latest_api_version(self) -> int:
        if not self._latest_api_version:
            response = requests.get(self.server + "versions")
            self._latest_api_version = int(response.json()["latest"])
        return self._latest_api_version

    def assertQuery(
            self,
            endpoint: Union[Tuple[str, str], Tuple[str, str, int]],
            status_code: Union[int, Iterable[int]] = 200,
            json: Optional[Union[dict, pydantic.BaseModel, List[Union[dict, pydantic.BaseModel]]]] = None,
            headers: Optional[dict] = None,
            token: Optional[str] = None,
            r_none: bool = False,
            r_is_json: bool = True,
            r_headers: Optional[Union[Mapping, Iterable]] = None,
            r_schema: Optional[Union[pydantic.BaseModel, Type[pydantic.BaseModel]]] = None,
            no_version: bool = False,
            no_token: bool = False,
            **kwargs
    ) -> requests.Response:
        """
        Do a query to the specified endpoint and return the response

        Besides also carrying the optional JSON data, headers and other keyword arguments,
        this function asserts that the response has the specified status code. Furthermore,
        the optional asserted response headers and asserted response schema can be used,
        where the headers are either an iterable to only assert certain keys or a mapping
        to also assert values, and the schema is either a schema class or an instance
        thereof (in the later case, the values will be compared to the response, too).

        :param endpoint: tuple of the method, the path of the endpoint and the
            optional API version (uses the latest version if omitted by default)
        :param status_code: asserted status code(s) of the final server's response
        :param json: optional dictionary or model holding the request data
        :param headers: optional set of headers to sent in the request
        :param token: optional auth token to use instead of the token of the test case
        :param r_none: switch to expect no (=empty) result and skip all other response content checks
        :param r_is_json: switch to check that the response contains JSON data
        :param r_headers optional set of headers which are asserted in the response
        :param r_schema: optional class or instance of a response schema to be asserted
        :param no_version: don't add the latest version to the two-element endpoint definition
        :param no_token: don't send any auth token along the request
        :param kwargs: dict of any further keyword arguments, passed to ``requests.request``
        :return: response to the requested resource
        """

        if len(endpoint) == 3:
            method, path, api_version = endpoint
        else:
            method, path = endpoint
            api_version = self.latest_api_version

        if path.startswith("/"):
            path = path[1:]
        if isinstance(json, list):
            json = [e if not isinstance(e, pydantic.BaseModel) else e.model_dump(mode="json") for e in json]
        if isinstance(json, pydantic.BaseModel):
            json = json.model_dump(mode="json")

        prefix = self.api_version_format.format(api_version)
        if prefix.startswith("/"):
            prefix = prefix[1:]
        if no_version:
            prefix = ""
        elif not prefix.endswith("/"):
            prefix += "/"
        headers = headers or {}
        token = token or self.token
        if token and not no_token:
            headers.setdefault(dependency.AUTH_TOKEN_HEADER, token)
        response = requests.request(
            method.upper(),
            self.server + prefix + path,
            json=json,
            headers=headers,
            **kwargs
        )

        if isinstance(status_code, int):
            self.assertEqual(status_code, response.status_code, response.text)
        elif isinstance(status_code, Iterable):
            self.assertTrue(
                response.status_code in status_code,
                (response.text, response.status_code, status_code)
            )

        if r_headers is not None:
            for k in (r_headers if isinstance(r_headers, Iterable) else r_headers.keys()):
                self.assertIsNotNone(response.headers.get(k), response.headers)
                if isinstance(r_headers, Mapping):
                    self.assertEqual(r_headers[k], response.headers.get(k), response.headers)

        if r_none:
            self.assertEqual("", response.text)

        else:
            if r_is_json:
                try:
                    self.assertIsNotNone(response.json())
                except ValueError:
                    self.fail(("No JSON content detected", response.headers, response.text))

            if r_schema and isinstance(r_schema, pydantic.BaseModel):
                self.assertEqual(r_schema, type(r_schema)(**response.json()), response.json())
            elif r_schema and isinstance(r_schema, type) and issubclass(r_schema, pydantic.BaseModel):
                self.assertTrue(r_schema(**response.json()), response.json())

        return response

    def make_user(self, name: Optional[str] = None) -> Tuple[Dict, str]:
        """
        Create a new user with the correct app secret and return its data and its auth token
        """

        response = self.assertQuery(
            ("POST", "/users"),
            201,
            json={"name": name} if name is not None else {},
            headers={dependency.APP_SECRET_HEADER: self.app_secret},
            no_token=True,
            r_schema=_schemas.NewUser
        )
        data = response.json()
        return data, data["auth_token"]

    def _start_api_server(self):
        def _mk_args(port, conf_path) -> list:
            return [
                sys.executable, "-m", "gather_core", "run", "--port", str(port),
                "--config", conf_path, "--host", "127.0.0.1", "--workers", "1", "--no-access-log"
            ]

        self.app_secret = secrets.token_urlsafe(16)
        self.write_config()
        env = dict(os.environ)
        env.update({
            "SERVER__APP_SECRET": self.app_secret,
            "DATABASE__CONNECTION": self.database_url
        })

        for i in range(conf.MAX_SERVER_START_RETRIES):
            self.server_process = subprocess.Popen(
                _mk_args(self.server_port, self.config_file),
                stderr=subprocess.PIPE,
                stdout=subprocess.PIPE,
                start_new_session=True,
                env=env
            )

            for j in range(conf.MAX_SERVER_WAIT_RETRIES):
                try:
                    self.server_process.wait(conf.API_SUBPROCESS_START_WAIT_TIMEOUT)
                except subprocess.TimeoutExpired:
                    pass
                else:
                    self._quit_api_server()
                    self.server_port += 1
                    break

                try:
                    requests.get(self.server)
                    return
                except requests.exceptions.ConnectionError:
                    pass

            else:
                if self.server_process.poll() is not None:
                    self._quit_api_server()
                    self.server_port += 1

        else:
            self.server_process.terminate()
            outs, errs = self.server_process.communicate()
            return_code = self.server_process.poll()
            self._quit_api_server()
            self.fail(
                f"Failed to successfully start the API server after {conf.MAX_SERVER_WAIT_RETRIES} "
                f"tries. Server process returned code {return_code}.\n"
                f"{' STDERR '.center(80, '=')}\n{errs.decode('UTF-8')}\n"
                f"{' STDOUT '.center(80, '=')}\n{outs.decode('UTF-8')}"
            )

    def _quit_api_server(self):
        if self.server_process is None:
            return
        self.server_process.terminate()
        try:
            self.server_process.wait(conf.API_SUBPROCESS_TERMINATE_TIMEOUT)
        except subprocess.TimeoutExpired:
            pass
        self.server_process.kill()
        try:
            self.server_process.wait(conf.API_SUBPROCESS_KILL_TIMEOUT)
        except subprocess.TimeoutExpired:
            pass
        self.server_process.stdout.close()
        self.server_process.stderr.close()

    def setUp(self) -> None:
        super().setUp()
        self.server_port = random.randint(10000, 20000)
        self._start_api_server()

    def tearDown(self) -> None:
        self._quit_api_server()
        super().tearDown()

    @classmethod
    def setUpClass(cls) -> None:
        super().setUpClass()
        p = subprocess.run(
            [sys.executable, "-m", "gather_core", "run", "-h"],
            stderr=subprocess.PIPE,
            stdout=subprocess.PIPE,
            start_new_session=True
        )
        if p.returncode != 0:
            raise RuntimeError("Executing the 'gather_core' module from the current Python interpreter failed!")
