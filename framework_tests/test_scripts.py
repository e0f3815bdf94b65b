import os
import pathlib as pl

import pytest

from multi_sandbox.provisioning import scripts

TEMPLATES = {
    "hello_template": "#!/bin/sh\necho %%GREETING%% from %%PORT%%\n",
    "cnf_template": "[mysqld]\nport=%%PORT%%\n",
}


def test_render():
    content = scripts.render("port=%%PORT%% id=%%SERVER_ID%%", {"PORT": 20001, "SERVER_ID": 100})
    assert content == "port=20001 id=100"


def test_render_missing_value():
    with pytest.raises(KeyError, match="SERVER_ID"):
        scripts.render("port=%%PORT%% id=%%SERVER_ID%%", {"PORT": 20001})


def test_render_adjacent_placeholders():
    content = scripts.render("%%NODE_LABEL%%%%NODE%%/use", {"NODE_LABEL": "node", "NODE": 2})
    assert content == "node2/use"


def test_write_script(tmp_path: pl.Path):
    outfile = scripts.write_script(
        templates=TEMPLATES,
        script_name="hello",
        template_name="hello_template",
        destdir=tmp_path,
        data={"GREETING": "hi", "PORT": 20001},
    )

    assert outfile == tmp_path / "hello"
    assert outfile.read_text() == "#!/bin/sh\necho hi from 20001\n"
    assert os.access(outfile, os.X_OK)


def test_write_config_not_executable(tmp_path: pl.Path):
    outfile = scripts.write_script(
        templates=TEMPLATES,
        script_name="my.sandbox.cnf",
        template_name="cnf_template",
        destdir=tmp_path,
        data={"PORT": 20001},
    )

    assert "port=20001" in outfile.read_text()
    assert not os.access(outfile, os.X_OK)


def test_write_script_unknown_template(tmp_path: pl.Path):
    with pytest.raises(KeyError, match="nonexistent_template"):
        scripts.write_script(
            templates=TEMPLATES,
            script_name="hello",
            template_name="nonexistent_template",
            destdir=tmp_path,
            data={},
        )
    assert not (tmp_path / "hello").exists()
