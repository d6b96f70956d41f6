"""
File contents written by the bootstrap modules.

Shell snippets are static; ``CHEZMOI_CONFIG_TEMPLATE`` is filled in with
``str.format``.
"""

from typing import Dict

BASHRC = """\
# ~/.bashrc - managed by machine-rites; local changes belong in ~/.bashrc.d/99-local.sh
case $- in *i*) ;; *) return ;; esac

for snip in "$HOME/.bashrc.d/"*.sh; do
  [[ -r "$snip" ]] && . "$snip"
done
unset snip
"""

PROFILE = """\
# ~/.profile - managed by machine-rites
[ -n "$BASH_VERSION" ] && [ -f "$HOME/.bashrc" ] && . "$HOME/.bashrc"

for p in "$HOME/bin" "$HOME/.local/bin"; do
  case ":$PATH:" in *":$p:"*) ;; *) [ -d "$p" ] && PATH="$p:$PATH";; esac
done
export PATH
"""

HYGIENE = """\
# Shell options, history and XDG directories
shopt -s histappend checkwinsize cmdhist
shopt -s globstar extglob nullglob

HISTSIZE=100000
HISTFILESIZE=200000
HISTCONTROL=ignoredups:erasedups
HISTTIMEFORMAT='%F %T '
PROMPT_DIRTRIM=3
umask 027

export XDG_CONFIG_HOME="${XDG_CONFIG_HOME:-$HOME/.config}"
export XDG_DATA_HOME="${XDG_DATA_HOME:-$HOME/.local/share}"
export XDG_STATE_HOME="${XDG_STATE_HOME:-$HOME/.local/state}"
export XDG_CACHE_HOME="${XDG_CACHE_HOME:-$HOME/.cache}"

for p in "$HOME/.local/bin" "$HOME/bin"; do
  case ":$PATH:" in *":$p:"*) ;; *) [[ -d "$p" ]] && PATH="$p:$PATH";; esac
done
export PATH
"""

BASH_COMPLETION = """\
# System bash-completion
if ! shopt -oq posix; then
  if [[ -f /usr/share/bash-completion/bash_completion ]]; then
    . /usr/share/bash-completion/bash_completion
  elif [[ -f /etc/bash_completion ]]; then
    . /etc/bash_completion
  fi
fi
"""

SECRETS = r"""# Export secrets from pass, then from the plaintext fallback file
PASS_PREFIX="${PASS_PREFIX:-personal}"

pass_env() {
  command -v pass >/dev/null 2>&1 || return 0
  local prefix="${PASS_PREFIX}" item var val
  while IFS= read -r item; do
    [[ "$item" == "Search Terms:"* ]] && continue
    [[ -z "$item" ]] && continue
    val="$(pass show "$item" 2>/dev/null | head -n1)"
    var="${item##*/}"
    var="$(printf '%s' "$var" | tr '[:lower:]-' '[:upper:]_' | sed 's/[^A-Z0-9_]/_/g')"
    [[ -n "$var" && -n "$val" ]] && export "$var=$val"
  done < <(pass find "$prefix" 2>/dev/null || true)
}
pass_env

_plain="${XDG_CONFIG_HOME:-$HOME/.config}/secrets.env"
if [[ -f "$_plain" ]]; then
  chmod 600 "$_plain" 2>/dev/null || true
  while IFS= read -r line; do
    [[ "$line" =~ ^[[:space:]]*# ]] && continue
    [[ "$line" =~ ^[[:space:]]*$ ]] && continue
    line="${line#export }"
    key="${line%%=*}"
    val="${line#*=}"
    key="${key#"${key%%[![:space:]]*}"}"; key="${key%"${key##*[![:space:]]}"}"
    val="${val#"${val%%[![:space:]]*}"}"; val="${val%"${val##*[![:space:]]}"}"
    if [[ "$val" == \"*\" && "$val" == *\" ]]; then
      val="${val%\"}"; val="${val#\"}"
    elif [[ "$val" == \'*\' && "$val" == *\' ]]; then
      val="${val%\'}"; val="${val#\'}"
    fi
    [[ "$key" =~ ^[A-Za-z_][A-Za-z0-9_]*$ ]] && export "$key=$val"
  done < "$_plain"
  unset line key val
fi
unset _plain
"""

SSH_AGENT = """\
# One ssh-agent per login, shared through a state file
STATE_DIR="${XDG_STATE_HOME:-$HOME/.local/state}/ssh"
AGENT_ENV="$STATE_DIR/agent.env"
mkdir -p "$STATE_DIR"

write_env() {
  umask 077
  local tmp
  tmp="$(mktemp "$STATE_DIR/.agent.XXXXXX")"
  {
    echo "export SSH_AUTH_SOCK='$SSH_AUTH_SOCK'"
    [ -n "${SSH_AGENT_PID:-}" ] && echo "export SSH_AGENT_PID='$SSH_AGENT_PID'"
  } > "$tmp"
  mv -f "$tmp" "$AGENT_ENV"
}

agent_alive() {
  [ -S "${SSH_AUTH_SOCK:-}" ] && ssh-add -l >/dev/null 2>&1
}

start_agent() {
  eval "$(ssh-agent -s)" >/dev/null
  write_env
}

if [ -r "$AGENT_ENV" ]; then
  . "$AGENT_ENV"
fi
if ! agent_alive; then
  start_agent
fi

if ! ssh-add -l >/dev/null 2>&1; then
  for k in "$HOME/.ssh/id_ed25519" "$HOME/.ssh/id_rsa"; do
    [ -f "$k" ] && ssh-add "$k" >/dev/null 2>&1 && break
  done
fi

ensure_ssh_key() {
  local key_type="${1:-ed25519}"
  local key_file="$HOME/.ssh/id_${key_type}"
  if [ ! -f "$key_file" ]; then
    mkdir -p "$HOME/.ssh" && chmod 700 "$HOME/.ssh"
    ssh-keygen -t "$key_type" -f "$key_file" -N "" -C "$(whoami)@$(hostname)"
    ssh-add "$key_file"
  fi
  echo "Your SSH public key:"
  cat "${key_file}.pub"
}
"""

TOOLS = """\
# Language toolchains, loaded lazily where possible
export NVM_DIR="${XDG_DATA_HOME:-$HOME/.local/share}/nvm"
nvm() {
  unset -f nvm
  [[ -s "$NVM_DIR/nvm.sh" ]] && . "$NVM_DIR/nvm.sh"
  nvm "$@"
}
[[ -s "$NVM_DIR/bash_completion" ]] && . "$NVM_DIR/bash_completion"

if command -v pyenv >/dev/null 2>&1; then
  export PYENV_ROOT="${PYENV_ROOT:-$HOME/.pyenv}"
  eval "$(pyenv init - bash)"
fi

if command -v uv >/dev/null 2>&1; then
  eval "$(uv generate-shell-completion bash 2>/dev/null || true)"
fi

[[ -f "$HOME/.cargo/env" ]] && . "$HOME/.cargo/env"
[[ -f "$HOME/.deno/env" ]] && . "$HOME/.deno/env"

if command -v batcat >/dev/null 2>&1; then
  export MANPAGER="sh -c 'col -bx | batcat -l man -p'"
  export MANROFFOPT="-c"
fi
"""

PROMPT = r"""# git-aware prompt
if [[ -f /usr/lib/git-core/git-sh-prompt ]]; then
  . /usr/lib/git-core/git-sh-prompt
  export GIT_PS1_SHOWDIRTYSTATE=1
  export GIT_PS1_SHOWSTASHSTATE=1
  export GIT_PS1_SHOWUNTRACKEDFILES=1
  export GIT_PS1_SHOWUPSTREAM="auto"
  export GIT_PS1_SHOWCOLORHINTS=1
  if [[ -x /usr/bin/tput ]] && tput setaf 1 >&/dev/null; then
    PS1='\[\033[01;32m\]\u@\h\[\033[00m\]:\[\033[01;34m\]\w\[\033[00m\]$(__git_ps1 " (\[\033[01;31m\]%s\[\033[00m\])")\$ '
  else
    PS1='[\u@\h \W$(__git_ps1 " (%s)")]\$ '
  fi
fi
"""

STARSHIP_INIT = """\
# starship prompt, when installed
if command -v starship >/dev/null 2>&1; then
  export STARSHIP_CONFIG="${STARSHIP_CONFIG:-$HOME/.config/starship.toml}"
  eval "$(starship init bash)"
fi
"""

ALIASES = r"""# Aliases
alias ll='ls -alF'
alias la='ls -A'
alias l='ls -CF'
alias lt='ls -alFtr'

alias gs='git status -sb'
alias gd='git diff'
alias gdc='git diff --cached'
alias gl='git log --oneline --graph --decorate'
alias gp='git pull'
alias gpu='git push'

alias rm='rm -i'
alias cp='cp -i'
alias mv='mv -i'

alias ..='cd ..'
alias ...='cd ../..'
alias ....='cd ../../..'
alias h='history'
alias j='jobs -l'
alias path='echo -e ${PATH//:/\\n}'
"""

LOCAL = """\
# Machine-specific settings. Not managed by chezmoi.
"""

COMPLETIONS = """\
# Completions for developer tools
for f in /usr/share/bash-completion/completions/git \\
         /usr/share/doc/git/contrib/completion/git-completion.bash; do
  [[ -f $f ]] && . "$f" && break
done

if command -v gh >/dev/null 2>&1; then
  eval "$(gh completion -s bash 2>/dev/null)" || true
fi

command -v kubectl >/dev/null 2>&1 && eval "$(kubectl completion bash)" || true

for f in /usr/share/bash-completion/completions/docker \\
         /usr/share/bash-completion/completions/docker-compose; do
  [[ -f $f ]] && . "$f"
done

if command -v aws_completer >/dev/null 2>&1; then
  complete -C aws_completer aws
fi
"""

# ~/.bashrc.d snippets written by the shell-config module, by file name.
BASHRC_D_SNIPPETS: Dict[str, str] = {
    "00-hygiene.sh": HYGIENE,
    "10-bash-completion.sh": BASH_COMPLETION,
    "30-secrets.sh": SECRETS,
    "35-ssh.sh": SSH_AGENT,
    "40-tools.sh": TOOLS,
    "50-prompt.sh": PROMPT,
    "55-starship.sh": STARSHIP_INIT,
    "60-aliases.sh": ALIASES,
}
LOCAL_SNIPPET_NAME = "99-local.sh"
COMPLETIONS_SNIPPET_NAME = "41-completions.sh"

CHEZMOI_CONFIG_TEMPLATE = """\
sourceDir = "{source_dir}"

[data]
  name  = "{name}"
  email = "{email}"

[diff]
  command = "diff"
  args    = ["--color=auto"]

[merge]
  command = "{editor}"

[data.machine]
  hostname = "{hostname}"
  os       = "{os_name}"
  version  = "{os_version}"
"""

CHEZMOIIGNORE = """\
.bashrc.d/99-local.sh
README.md
.git
.gitignore
.DS_Store
*.tmp
*.swp
*~
"""

CHEZMOI_README = """\
# chezmoi source

This directory contains the chezmoi source for dotfiles management.

```bash
chezmoi apply             # apply the source state to $HOME
chezmoi diff              # show pending changes
git pull && chezmoi apply # update from the repository
chezmoi add ~/.newfile    # start managing a file
chezmoi edit ~/.bashrc    # edit a managed file
```

- `dot_*` files become `.` files in the home directory
- `private_*` files have restricted permissions
- `executable_*` files become executable
- `*.tmpl` files are templates processed by chezmoi
"""

GLOBAL_GITIGNORE_PATTERNS = [
    ".config/secrets.env",
    ".bashrc.d/99-local.sh",
    "*.swp",
    ".DS_Store",
    "*.tmp",
    "*~",
    ".vscode/settings.json",
    ".idea/",
]

STARSHIP_CONFIG = """\
format = "$all"
add_newline = false

[character]
success_symbol = "[➜](bold green) "
error_symbol = "[✗](bold red) "

[git_branch]
truncation_length = 32

[git_status]
conflicted = "!"
diverged = "⇕"
modified = "~"
staged = "+"
untracked = "?"
stashed = "≡"

[directory]
truncation_length = 3
truncate_to_repo = true

[python]
python_binary = ["python3", "python"]

[nodejs]
format = "via [⬢ $version](bold green) "
"""

GITLEAKS_CONFIG = """\
[extend]
useDefault = true

[[rules]]
id = "custom-api-key"
description = "Custom API Key Pattern"
regex = '''(?i)(api[_-]?key|apikey)['"]?\\s*[:=]\\s*['"]?([a-z0-9]{32,})'''

[[rules]]
id = "custom-secret-key"
description = "Custom Secret Key Pattern"
regex = '''(?i)(secret[_-]?key|secretkey)['"]?\\s*[:=]\\s*['"]?([a-z0-9]{32,})'''

[[rules]]
id = "custom-password"
description = "Custom Password Pattern"
regex = '''(?i)(password|passwd|pwd)['"]?\\s*[:=]\\s*['"]?([a-z0-9]{8,})'''

[allowlist]
paths = [
  '''vendor/''',
  '''node_modules/''',
  '''.*\\.min\\.js''',
  '''.*\\.min\\.css''',
]
regexes = [
  '''EXAMPLE_API_KEY''',
  '''test_password_123''',
  '''fake_secret_key''',
]
"""

PRE_COMMIT_CONFIG = """\
repos:
  - repo: https://github.com/gitleaks/gitleaks
    rev: v8.18.4
    hooks:
      - id: gitleaks
        args: ["--no-banner", "--redact", "--staged"]

  - repo: https://github.com/shellcheck-py/shellcheck-py
    rev: v0.10.0.1
    hooks:
      - id: shellcheck
        args: ["--severity=warning"]
        exclude: ^(vendor/|node_modules/)

  - repo: https://github.com/pre-commit/pre-commit-hooks
    rev: v4.5.0
    hooks:
      - id: trailing-whitespace
      - id: end-of-file-fixer
      - id: check-yaml
      - id: check-toml
      - id: check-json
      - id: check-merge-conflict
      - id: check-case-conflict
      - id: check-executables-have-shebangs
"""
