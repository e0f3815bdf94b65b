"""Templates of scripts and config files of the sandboxes."""

_HEADER = """#!/bin/sh
# Generated by multi-sandbox %%APP_VERSION%% on %%DATE_TIME%%
"""

# Scripts of a single node, written to the node directory

SINGLE_TEMPLATES: dict[str, str] = {
    "my_cnf_template": """
# Generated by multi-sandbox %%APP_VERSION%% on %%DATE_TIME%%
[mysql]
prompt='%%PROMPT%% [\\h:%%PORT%%] {\\u} (\\d) > '

[client]
user=msandbox
password=msandbox
port=%%PORT%%
socket=/tmp/mysql_sandbox%%PORT%%.sock

[mysqld]
user=%%OS_USER%%
port=%%PORT%%
socket=/tmp/mysql_sandbox%%PORT%%.sock
basedir=%%BASEDIR%%
datadir=%%DATADIR%%
tmpdir=%%TMPDIR%%
pid-file=%%DATADIR%%/mysql_sandbox%%PORT%%.pid
bind-address=127.0.0.1
server-id=%%SERVER_ID%%
%%MYSQLX_OPTIONS%%
%%REPL_OPTIONS%%
""",
    "init_db_template": _HEADER
    + """
BASEDIR=%%BASEDIR%%
DATADIR=%%DATADIR%%
if [ -d $DATADIR/mysql ]
then
    echo "Initialization already done. Use ./clear to start over"
    exit 0
fi
mkdir -p $DATADIR %%TMPDIR%%
$BASEDIR/bin/mysqld --no-defaults --initialize-insecure \\
    --basedir=$BASEDIR --datadir=$DATADIR --user=%%OS_USER%% \\
    > %%SANDBOX_DIR%%/init.log 2>&1
""",
    "start_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
PIDFILE=%%DATADIR%%/mysql_sandbox%%PORT%%.pid
if [ -f $PIDFILE ]
then
    echo "sandbox server already started (found pid file $PIDFILE)"
    exit 0
fi
%%BASEDIR%%/bin/mysqld_safe --defaults-file=$SBDIR/my.sandbox.cnf "$@" > /dev/null 2>&1 &
TIMEOUT=180
ATTEMPTS=0
while [ ! -f $PIDFILE ]
do
    ATTEMPTS=$(( ATTEMPTS + 1 ))
    if [ $ATTEMPTS -gt $TIMEOUT ]
    then
        echo "server not started within $TIMEOUT seconds"
        exit 1
    fi
    sleep 1
done
echo " sandbox server started"
""",
    "stop_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
PIDFILE=%%DATADIR%%/mysql_sandbox%%PORT%%.pid
if [ -f $PIDFILE ]
then
    echo "stop $SBDIR"
    %%BASEDIR%%/bin/mysqladmin --defaults-file=$SBDIR/my.sandbox.cnf shutdown
else
    echo "sandbox server not running"
fi
""",
    "send_kill_template": _HEADER
    + """
PIDFILE=%%DATADIR%%/mysql_sandbox%%PORT%%.pid
if [ -f $PIDFILE ]
then
    kill -9 $(cat $PIDFILE)
    rm -f $PIDFILE
fi
""",
    "status_template": _HEADER
    + """
PIDFILE=%%DATADIR%%/mysql_sandbox%%PORT%%.pid
if [ -f $PIDFILE ]
then
    echo "%%PROMPT%% on"
else
    echo "%%PROMPT%% off"
    exit 1
fi
""",
    "restart_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
$SBDIR/stop
$SBDIR/start "$@"
""",
    "use_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
%%BASEDIR%%/bin/mysql --defaults-file=$SBDIR/my.sandbox.cnf "$@"
""",
    "clear_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
$SBDIR/stop
rm -rf %%DATADIR%%
$SBDIR/init_db
""",
    "load_grants_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
$SBDIR/use -u root < $SBDIR/grants.mysql
""",
    "grants_template": """
CREATE USER IF NOT EXISTS msandbox@'127.%' IDENTIFIED BY 'msandbox';
GRANT ALL ON *.* TO msandbox@'127.%';
CREATE USER IF NOT EXISTS msandbox@'localhost' IDENTIFIED BY 'msandbox';
GRANT ALL ON *.* TO msandbox@'localhost';
CREATE USER IF NOT EXISTS rsandbox@'127.%' IDENTIFIED BY 'rsandbox';
GRANT REPLICATION SLAVE ON *.* TO rsandbox@'127.%';
""",
    "test_sb_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
$SBDIR/use -BN -e 'select @@server_id, @@port' || exit 1
echo "ok - %%PROMPT%% responds on port %%PORT%%"
""",
}

REPLICATION_OPTIONS = """relay-log-index=mysql-relay
relay-log=mysql-relay
log-bin=mysql-bin
log-error=msandbox.err"""

# Scripts of the whole deployment, written to the deployment directory

_ALL_NODES_LOOP = """
SBDIR=%%SANDBOX_DIR%%
for N in %%NODE_NUMS%%
do
    echo "# executing '{cmd}' on %%NODE_LABEL%%$N"
    $SBDIR/%%NODE_LABEL%%$N/{cmd} "$@"{suffix}
done
"""


def _all_nodes(cmd: str, suffix: str = "") -> str:
    return _HEADER + _ALL_NODES_LOOP.format(cmd=cmd, suffix=suffix)


MULTIPLE_TEMPLATES: dict[str, str] = {
    "node_template": _HEADER
    + """
%%SANDBOX_DIR%%/%%NODE_LABEL%%%%NODE%%/use "$@"
""",
    "start_multi_template": _all_nodes("start"),
    "restart_multi_template": _all_nodes("restart"),
    "status_multi_template": _all_nodes("status"),
    "test_sb_multi_template": _all_nodes("test_sb", suffix=" || exit 1"),
    "stop_multi_template": _all_nodes("stop"),
    "clear_multi_template": _all_nodes("clear"),
    "send_kill_multi_template": _all_nodes("send_kill"),
    "use_multi_template": _HEADER
    + """
SBDIR=%%SANDBOX_DIR%%
if [ "$1" = "" ]
then
    echo "syntax: $0 command"
    exit 1
fi
for N in %%NODE_NUMS%%
do
    echo "# server: $N"
    echo "$@" | $SBDIR/%%NODE_LABEL%%$N/use
done
""",
}
