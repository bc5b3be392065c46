"""
Command Analyzer Patterns - Built-in detection table

Provides:
- DEFAULT_PATTERNS: CommandPattern entries, most severe first within a code
- SYSTEM_DIRECTORIES: Top-level paths treated as protected

Within one line only the first matching pattern of a code is reported,
so the order of same-code entries sets the reported severity.
"""

from typing import List

from ..guard.types import Severity
from .pattern import CommandPattern

CRITICAL = Severity.CRITICAL
HIGH = Severity.HIGH
MEDIUM = Severity.MEDIUM
LOW = Severity.LOW

SYSTEM_DIRECTORIES = (
    "bin",
    "boot",
    "dev",
    "etc",
    "lib",
    "lib64",
    "opt",
    "proc",
    "root",
    "sbin",
    "srv",
    "sys",
    "usr",
    "var",
    "System",
    "Library",
    "Applications",
)

# rm with a recursive flag, then any further flags
_RM_RECURSIVE = r"\brm\s+(?:-{1,2}[\w-]+\s+)*?(?:-[a-z]*r[a-z]*|--recursive)\s+(?:-{1,2}[\w-]+\s+)*"
_END = r"(?=$|\s|;|&|\||\))"
_SYSTEM_ALT = "|".join(SYSTEM_DIRECTORIES)

_STOP_DELETE = "BLOCKED: This command would destroy the system. Never delete from root or system directories."
_STOP_DISK = "BLOCK this command. It can destroy filesystems or volumes irreversibly."
_FORCE_PUSH_REC = "Use --force-with-lease instead or coordinate with the team before force pushing."
_REWRITE_REC = "Coordinate with the whole team and back up the repository first."


DEFAULT_PATTERNS: List[CommandPattern] = [
    # === Catastrophic deletes ===
    CommandPattern(
        "DANGEROUS_DELETE_HOME",
        CRITICAL,
        _RM_RECURSIVE + r"(?:~|\$\{?home\}?|/home|/home/[^/\s]+|/users/[^/\s]+)/?\s*\*?" + _END,
        "Recursive delete targeting home directory detected",
        "BLOCKED: This could delete all user data. Never delete from home directory with wildcards.",
    ),
    CommandPattern(
        "DANGEROUS_DELETE_ROOT",
        CRITICAL,
        _RM_RECURSIVE
        + rf"(?:/|/\*|/\s+\*|/(?:{_SYSTEM_ALT})(?:/local|/log|/ssh|/lib)?/?\*?|/tmp/\*)"
        + _END,
        "Recursive delete targeting root or system directory detected",
        _STOP_DELETE,
    ),
    CommandPattern(
        "DANGEROUS_DELETE_ROOT",
        CRITICAL,
        r"\bfind\s+/(?:\s|$).*-delete\b",
        "Destructive find command targeting root directory with -delete",
        _STOP_DELETE,
    ),
    CommandPattern(
        "PROTECTED_DIRECTORY_ACCESS",
        CRITICAL,
        r"\b(?:rm|mv|chmod|chown|chgrp|shred|truncate)\b[^;&|]*\s"
        + rf"/(?:{_SYSTEM_ALT})(?:/[^\s;&|]*)?"
        + _END,
        "Command modifies a protected system directory",
        "BLOCKED: Operations on system directories are not allowed.",
        ignore_case=False,
    ),
    CommandPattern(
        "FORK_BOMB",
        CRITICAL,
        r"(\w+|:)\s*\(\)\s*\{\s*\1\s*\|\s*\1\s*&\s*\}\s*;\s*\1",
        "Potential fork bomb detected",
        "Remove fork bomb pattern; it can render systems unusable.",
    ),
    # === Disk destruction ===
    CommandPattern(
        "DISK_WIPE",
        CRITICAL,
        r"\bdd\s+.*\bif=/dev/(?:zero|u?random)\b",
        "Destructive disk wipe operation detected (dd from /dev/zero)",
        _STOP_DISK,
    ),
    CommandPattern(
        "DISK_WIPE",
        CRITICAL,
        r"\bdd\s+.*\bof=/dev/(?:sd|hd|nvme|vd|xvd|disk|mmcblk)",
        "Raw write to a block device detected",
        _STOP_DISK,
    ),
    CommandPattern(
        "DISK_WIPE",
        CRITICAL,
        r"\bmkfs(?:\.\w+)?\b.*\s/dev/",
        "Destructive filesystem creation detected (mkfs)",
        _STOP_DISK,
    ),
    CommandPattern(
        "DISK_WIPE",
        CRITICAL,
        r"\b(?:wipefs|sfdisk|fdisk|parted|sgdisk|blkdiscard|pvremove|vgremove|lvremove)\b"
        r"|\bcryptsetup\b.*\bluksformat\b",
        "Destructive disk or volume operation detected",
        _STOP_DISK,
    ),
    # === Remote code / shells ===
    CommandPattern(
        "REVERSE_SHELL",
        CRITICAL,
        r"\bbash\s+-i\b.*/dev/tcp/|/dev/tcp/.*\bbash\s+-i\b"
        r"|\b(?:nc|ncat|netcat)\b.*\s-e\s+/bin/(?:ba)?sh\b"
        r"|socket\.socket.*dup2.*/bin/(?:ba)?sh",
        "Reverse shell pattern detected",
        "BLOCK this command. Reverse shells allow remote code execution.",
    ),
    CommandPattern(
        "PIPE_TO_SHELL",
        HIGH,
        r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da|k)?sh\b"
        r"|\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?python[23]?\b"
        r"|\b(?:eval|source)\s+[\"']?[\$<]\(\s*(?:curl|wget)\b",
        "Piping remote content directly to shell",
        "Download scripts to disk and review checksum before execution.",
    ),
    CommandPattern(
        "NETWORK_SCRIPT_DOWNLOAD",
        HIGH,
        r"\b(?:curl|wget)\s.*https?://\S*\.(?:sh|bash|ps1)\b"
        r"|\b(?:curl|wget)\s.*https?://.*(?:\s-o\s*-(?:\s|$)|--output\s+-(?:\s|$)|\s-O-|/dev/stdout)",
        "Remote script download detected",
        "Download to disk, verify checksum, and review before execution.",
    ),
    # === Credentials ===
    CommandPattern(
        "SENSITIVE_ENV_ACCESS",
        CRITICAL,
        r"\$\{?(?:password|secret|api_?key|aws_secret\w*|aws_access_key\w*|github_token"
        r"|ssh_key|db_password|database_url|private_?key|auth_?token|token|key)\b",
        "Attempt to access sensitive environment variable",
        "BLOCK or MASK this operation. Use secure secret management instead of raw credentials.",
    ),
    CommandPattern(
        "DOTENV_FILE_READ",
        CRITICAL,
        r"\b(?:cat|less|more|head|tail|grep|egrep|awk|sed|bat|strings|source|xxd|od)\b"
        r"[^;&|]*?[\s/'\"=]\.env(?:\.[\w-]+)?(?=$|[\s'\";&|)])"
        r"|\bdotenv\b\s+(?:get|list)\b",
        "Attempt to read .env file containing credentials",
        "BLOCK this operation. Provide sanitized config instead of exposing raw .env files.",
    ),
    CommandPattern(
        "PRIVATE_KEY_ACCESS",
        HIGH,
        r"\b(?:cat|less|more|head|tail|cp|scp|base64|xxd|curl|nc)\b[^;&|]*?"
        r"(?:\.ssh/id_(?:rsa|dsa|ecdsa|ed25519)(?![.\w])|\.(?:pem|p12|pfx)(?!\w))",
        "Private key material accessed",
        "Never print or copy private keys from an agent session.",
    ),
    CommandPattern(
        "ENV_ACCESS",
        HIGH,
        r"(?:^|[;&|]\s*)env\s*(?:$|[;&|>])|\bprintenv\b|\bexport\s+-p\b|\bdeclare\s+-p\b"
        r"|(?:^|[;&|]\s*)set\s*(?:$|\|)",
        "Environment variable access detected",
        "Consider masking sensitive values or blocking environment dumps.",
    ),
    # === System changes ===
    CommandPattern(
        "SYSTEM_FILE_WRITE",
        HIGH,
        r">\s*/etc/(?:passwd|shadow|sudoers|group)\b|\btee\s+(?:-a\s+)?/etc/(?:passwd|shadow|sudoers)\b",
        "Attempt to overwrite sensitive system file",
        "Avoid writing directly to system credential files.",
    ),
    CommandPattern(
        "DANGEROUS_PERMISSIONS",
        HIGH,
        r"\bch(?:mod|own)\s+(?:-[a-z]*r[a-z]*|--recursive)\s+.*\s/(?:" + _SYSTEM_ALT + r")?(?:/|\s|$)",
        "Recursive permission change on system path detected",
        "Avoid recursive permission changes on system paths. Scope to specific files.",
    ),
    CommandPattern(
        "DANGEROUS_PERMISSIONS",
        HIGH,
        r"\bchmod\s+(?:-R\s+)?0?777\b",
        "World-writable permissions",
        "Grant the narrowest permissions that work.",
    ),
    CommandPattern(
        "SUDO_USAGE",
        MEDIUM,
        r"\b(?:sudo|doas)\s+|\bsu\s+-",
        "Privilege escalation without guard rails",
        "Run with least privilege or document why elevated rights are required.",
    ),
    CommandPattern(
        "DESTRUCTIVE_PACKAGE_REMOVAL",
        HIGH,
        r"\b(?:apt-get|apt|yum|dnf)\s+(?:-\S+\s+)*(?:remove|purge|autoremove)\b|\bpacman\s+-R|\bapk\s+del\b",
        "Package removal operation detected",
        "Ensure package removal is intended and scoped. Use dry runs where possible.",
        ignore_case=False,
    ),
    # === Containers / cloud / infra ===
    CommandPattern(
        "DESTRUCTIVE_CONTAINER_OP",
        HIGH,
        r"\b(?:docker|podman)\s+(?:system\s+prune|rm\s+-f|rmi\s+-f|image\s+prune\s+-a"
        r"|volume\s+(?:rm|prune)|network\s+prune|container\s+prune)\b",
        "Destructive container operation detected",
        "Review container cleanup commands; they can delete images, volumes, or networks.",
    ),
    CommandPattern(
        "DESTRUCTIVE_K8S_OP",
        HIGH,
        r"\bkubectl\s+delete\b.*(?:--all\b|--all-namespaces\b|\bnamespaces?\b|\bns\b)",
        "Destructive Kubernetes delete operation detected",
        "Avoid bulk delete operations; require approval and verify target namespace.",
    ),
    CommandPattern(
        "DESTRUCTIVE_K8S_OP",
        MEDIUM,
        r"\bkubectl\s+delete\b",
        "Kubernetes delete operation detected",
        "Verify the context and namespace before deleting resources.",
    ),
    CommandPattern(
        "DESTRUCTIVE_CLOUD_STORAGE",
        HIGH,
        r"\baws\s+s3\s+rm\b.*--recursive|\baws\s+s3\s+rb\b.*--force"
        r"|\bgsutil\s+(?:-m\s+)?rm\s+.*-r\b|\baz\s+storage\s+blob\s+delete-batch\b|\brclone\s+purge\b",
        "Destructive cloud storage operation detected",
        "Use dry runs or retention policies before deleting cloud storage.",
    ),
    CommandPattern(
        "DESTRUCTIVE_INFRA",
        HIGH,
        r"\b(?:terraform|pulumi)\s+destroy\b|\bterraform\s+apply\b.*\s-destroy\b|\bhelm\s+(?:uninstall|delete)\b",
        "Destructive infrastructure operation detected",
        "Require approval before running infrastructure destroy or uninstall commands.",
    ),
    # === Databases ===
    CommandPattern(
        "DATABASE_OPERATION",
        HIGH,
        r"\b(?:drop\s+(?:database|table|schema|index)|truncate\s+table|alter\s+(?:table|database)"
        r"|grant\s+all|dropdatabase|flushall|flushdb)\b"
        r"|\bdelete\s+from\s+\w+\s*(?:;|$|[\"'])"
        r"|\bupdate\s+\w+\s+set\b(?!.*\bwhere\b)",
        "Destructive database operation detected",
        "Review database operation carefully. Use transactions and backups.",
    ),
    CommandPattern(
        "DATABASE_OPERATION",
        MEDIUM,
        r"\b(?:mysql|psql|sqlite3?|sqlcmd|mongo|mongosh|redis-cli|cqlsh|clickhouse-client)\b"
        r".*\b(?:delete\s+from|update\s+\w+\s+set|truncate|revoke)\b",
        "Database write operation detected",
        "Review database operation carefully. Use transactions and backups.",
    ),
    # === Git ===
    CommandPattern(
        "RISKY_GIT_OPERATION",
        HIGH,
        r"\bgit\s+push\b.*\s(?:--force(?![-\w])|-f\b)",
        "Force push detected - can overwrite remote history",
        _FORCE_PUSH_REC,
        category="git",
        ignore_case=False,
    ),
    CommandPattern(
        "RISKY_GIT_OPERATION",
        HIGH,
        r"\bgit\s+(?:filter-branch|filter-repo)\b",
        "History rewrite detected - rewrites the entire repository",
        _REWRITE_REC,
        category="git",
    ),
    CommandPattern(
        "RISKY_GIT_OPERATION",
        HIGH,
        r"\bgit\s+reflog\s+expire\b|\bgit\s+update-ref\s+-d\b",
        "Direct ref manipulation detected - commits may become unrecoverable",
        "Only use if you know exactly which refs are affected.",
        category="git",
    ),
    CommandPattern(
        "RISKY_GIT_OPERATION",
        MEDIUM,
        r"\bgit\s+reset\s+--hard\b",
        "Hard reset detected - will discard local changes",
        "Ensure you have backups or stash important changes first.",
        category="git",
    ),
    CommandPattern(
        "RISKY_GIT_OPERATION",
        MEDIUM,
        r"\bgit\s+clean\s+-[a-zA-Z]*f",
        "Git clean with force - will delete untracked files",
        "Review untracked files first; use -n for a dry run.",
        category="git",
        ignore_case=False,
    ),
    CommandPattern(
        "RISKY_GIT_OPERATION",
        MEDIUM,
        r"\bgit\s+branch\s+(?:-D|--delete\s+--force)\b|\bgit\s+checkout\s+--\s+\.|\bgit\s+gc\s+--aggressive\b",
        "Destructive local git operation detected",
        "Ensure the branch or changes are no longer needed.",
        category="git",
        ignore_case=False,
    ),
    CommandPattern(
        "RISKY_GIT_OPERATION",
        LOW,
        r"\bgit\s+rebase\b|\bgit\s+branch\s+-d\b",
        "History-changing git operation detected",
        "Only rebase or delete local, merged work.",
        category="git",
        ignore_case=False,
    ),
]
