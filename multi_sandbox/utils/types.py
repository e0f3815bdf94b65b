import pathlib as pl
import typing as tp

FileType = str | pl.Path
# Callable that receives progress / tracing messages
LogFuncType = tp.Callable[[str], None]
