"""Writing of sandbox scripts and config files from templates.

Templates contain `%%KEY%%` placeholders that are replaced with values from a data record.
Scripts (files without extension and `*.sh` files) are made executable.
"""

import logging
import pathlib as pl
import re
import typing as tp

import multi_sandbox.utils.types as ttypes

LOGGER = logging.getLogger(__name__)

RE_PLACEHOLDER = re.compile(r"%%([A-Z0-9_]+)%%")

TemplatesType = tp.Mapping[str, str]


def render(template: str, data: tp.Mapping[str, tp.Any]) -> str:
    """Replace all `%%KEY%%` placeholders in the template with values from `data`."""
    content = template
    for key, value in data.items():
        content = content.replace(f"%%{key}%%", str(value))

    missing = sorted(set(RE_PLACEHOLDER.findall(content)))
    if missing:
        msg = f"No values for template placeholders: {', '.join(missing)}"
        raise KeyError(msg)

    return content


def write_script(
    *,
    templates: TemplatesType,
    script_name: str,
    template_name: str,
    destdir: ttypes.FileType,
    data: tp.Mapping[str, tp.Any],
    make_executable: bool = True,
) -> pl.Path:
    """Render template `template_name` and write it to `destdir/script_name`."""
    try:
        template = templates[template_name]
    except KeyError as exc:
        msg = f"Template '{template_name}' not found"
        raise KeyError(msg) from exc

    content = render(template=template, data=data)

    outfile = pl.Path(destdir) / script_name
    outfile.unlink(missing_ok=True)
    outfile.write_text(f"{content.rstrip()}\n", encoding="utf-8")

    # Make `*.sh` files and files without extension executable
    if make_executable and ("." not in script_name or script_name.endswith(".sh")):
        outfile.chmod(0o755)

    LOGGER.debug(f"Written '{outfile}' from template '{template_name}'")
    return outfile
