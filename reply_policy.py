"""Summary-request templates appended to prompts when the phone asks for a reply."""
import os
from typing import Optional

from settings import DEFAULT_WS_PORT

INLINE_SUFFIX = """

[IMPORTANT: finish the task above first. When you are done, end your answer with one line in this format (at most 50 words) so I can read it on my phone:
[Summary: what you did]]"""

COMMAND_SUFFIX = """

[IMPORTANT: when the task is complete, run this command to send the result to my phone:
cd {script_dir} && python send_reply.py "your short summary (at most 50 words)"{port_arg}
]"""


class SummaryRequestPolicy:
    """Wraps staged text with a fixed suffix; swap the template without touching dispatch."""

    def __init__(self, template: str = INLINE_SUFFIX):
        self.template = template

    def suffix(self) -> str:
        return self.template

    def wrap(self, text: str) -> str:
        return text + self.suffix()

    def wrap_if_requested(self, text: str, requested: bool) -> str:
        if requested and text and text.strip():
            return self.wrap(text)
        return text


class CommandReplyPolicy(SummaryRequestPolicy):
    """Asks the agent to call the send_reply CLI itself, pointing at our port."""

    def __init__(self, port: int = DEFAULT_WS_PORT, script_dir: Optional[str] = None):
        super().__init__(COMMAND_SUFFIX)
        self.port = port
        self.script_dir = script_dir or os.path.dirname(os.path.abspath(__file__))

    def suffix(self) -> str:
        port_arg = f" --port={self.port}" if self.port != DEFAULT_WS_PORT else ""
        return self.template.format(script_dir=self.script_dir, port_arg=port_arg)


def make_policy(mode: str, port: int = DEFAULT_WS_PORT) -> SummaryRequestPolicy:
    if mode == "command":
        return CommandReplyPolicy(port=port)
    return SummaryRequestPolicy()
