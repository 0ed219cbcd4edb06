import pytest
from pydantic import ValidationError

from src.jdbc_loader.core.enums import LoadMode
from src.jdbc_loader.schemas.pipeline import PipelineConfig


def _base(**overrides):
    params = {
        "driverJars": "gs://bucket/mysql.jar,gs://bucket/extra.jar",
        "driverClassName": "mysql+aiomysql",
        "connectionURL": "jdbc:mysql://h:3306/db",
        "query": "select id, name as full_name from t",
        "outputTable": "project:dataset.people",
        "bigQueryLoadingTemporaryDirectory": "/tmp/staging",
    }
    params.update(overrides)
    return params


def test_template_parameter_names_and_defaults():
    cfg = PipelineConfig.model_validate(_base())

    assert cfg.driver_jars == ("gs://bucket/mysql.jar", "gs://bucket/extra.jar")
    assert cfg.use_column_alias is False
    assert cfg.truncate_before_write is False
    assert cfg.load_mode is LoadMode.APPEND
    assert cfg.batch_size == 1000


def test_snake_case_names_are_accepted():
    cfg = PipelineConfig(
        driver_class_name="sqlite+aiosqlite",
        connection_url="jdbc:sqlite:/tmp/x.db",
        query="select 1",
        output_table="main.people",
        staging_dir="/tmp/staging",
        truncate_before_write=True,
    )
    assert cfg.load_mode is LoadMode.TRUNCATE


def test_config_is_immutable():
    cfg = PipelineConfig.model_validate(_base())
    with pytest.raises(ValidationError):
        cfg.query = "select 2"


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        PipelineConfig.model_validate(_base(somethingElse="x"))


@pytest.mark.parametrize("url", ["http://h/db", "mysql://h:3306/db?x=<y>", "%%%"])
def test_connection_url_shape(url):
    with pytest.raises(ValidationError) as e:
        PipelineConfig.model_validate(_base(connectionURL=url))
    assert "connection" in str(e.value).lower()


def test_base64_connection_url_is_accepted_with_key():
    cfg = PipelineConfig.model_validate(
        _base(connectionURL="amRiYzpteXNxbDovL2g6MzMwNi9kYg==", KMSEncryptionKey="key-1")
    )
    enc = cfg.encryptable("connection_url")
    assert enc.encrypted is True
    assert enc.raw == "amRiYzpteXNxbDovL2g6MzMwNi9kYg=="


def test_plaintext_fields_are_not_marked_encrypted():
    cfg = PipelineConfig.model_validate(_base(username="u", password="p"))
    assert cfg.encryptable("password").encrypted is False
    assert cfg.encryptable("username").raw == "u"


@pytest.mark.parametrize("table", ["people", "a.b.c", "project:people", "es:Upper", "1ds.t"])
def test_output_table_shape(table):
    with pytest.raises(ValidationError):
        PipelineConfig.model_validate(_base(outputTable=table))


def test_es_output_table():
    cfg = PipelineConfig.model_validate(_base(outputTable="es:people"))
    assert cfg.output_table == "es:people"


@pytest.mark.parametrize("size", [0, -1, 100_001])
def test_batch_size_bounds(size):
    with pytest.raises(ValidationError):
        PipelineConfig.model_validate(_base(batchSize=size))


def test_connection_properties_shape():
    cfg = PipelineConfig.model_validate(
        _base(connectionProperties="unicode=true;characterEncoding=UTF-8")
    )
    assert cfg.connection_properties == "unicode=true;characterEncoding=UTF-8"

    with pytest.raises(ValidationError):
        PipelineConfig.model_validate(_base(connectionProperties="a=b c"))


def test_blank_optional_values_become_none():
    cfg = PipelineConfig.model_validate(_base(KMSEncryptionKey="", password="  "))
    assert cfg.kms_encryption_key is None
    assert cfg.password is None


def test_repr_hides_credentials():
    cfg = PipelineConfig.model_validate(_base(username="admin", password="s3cret"))
    text = repr(cfg)
    assert "s3cret" not in text
    assert "admin" not in text


def test_base64_shaped_credentials_without_key_warn(caplog):
    with caplog.at_level("WARNING", logger="jdbc_loader"):
        PipelineConfig.model_validate(_base(username="bG9hZGVy", password="czNjcmV0MTI="))

    assert "username looks like base64" in caplog.text
    assert "password looks like base64" in caplog.text


def test_plain_credentials_do_not_warn(caplog):
    with caplog.at_level("WARNING", logger="jdbc_loader"):
        PipelineConfig.model_validate(_base(username="loader_1", password="p@ss!"))

    assert "looks like base64" not in caplog.text
