"""
Ollama handler — local LLM models pulled with ``ollama``.
"""

from __future__ import annotations

from blueprint.core.models.rule import Rule
from blueprint.core.models.status import OllamaStatus, StatusRecord
from blueprint.core.validation import validate_tokens
from blueprint.handlers.base import Handler

OLLAMA_INSTALL = "curl -fsSL https://ollama.com/install.sh | sh"


class OllamaHandler(Handler):
    kind = "ollama"
    status_type = OllamaStatus

    def up(self) -> str:
        command = self.get_command()
        session = self.context.session
        session.ensure_prerequisite(
            "ollama",
            lambda: session.run(["sh", "-c", "command -v ollama"]).ok,
            lambda: session.execute(OLLAMA_INSTALL, needs_sudo=False),
        )
        self.execute(command)
        return f"Pulled {', '.join(self.rule.ollama_models)}"

    def down(self) -> str:
        command = self.get_command()
        models = self.rule.ollama_models
        if not any(m in self._installed_models() for m in models):
            return f"{', '.join(models)} not present"
        self.execute(command)
        return f"Removed {', '.join(models)}"

    def get_command(self) -> str:
        models = validate_tokens(self.rule.ollama_models, "model")
        verb = "rm" if self.is_uninstall else "pull"
        return " && ".join(f"ollama {verb} {m}" for m in models)

    def display_info(self) -> list[str]:
        return [f"Models: {', '.join(self.rule.ollama_models)}"]

    def needs_sudo(self) -> bool | None:
        return False

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            OllamaStatus(model=m, blueprint=blueprint, os=os_name)
            for m in self.rule.ollama_models
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return set(rule.ollama_models)

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(kind="uninstall", ollama_models=(record.model,), os_list=(record.os,))

    def _installed_models(self) -> set[str]:
        result = self.context.session.run(["ollama", "list"])
        if not result.ok:
            return set()
        names = set()
        for line in result.stdout.splitlines()[1:]:
            fields = line.split()
            if fields:
                names.add(fields[0])
                names.add(fields[0].removesuffix(":latest"))
        return names
