#!/usr/bin/env python3
"""Interactive chat CLI for trying out the gateway."""

import sys
import uuid

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

MODES = ("simple", "with_tools", "memory")


class ChatCLI:
    """Interactive chat interface for the gateway HTTP API."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        self.base_url = base_url
        self.conversation_id = str(uuid.uuid4())
        self.model_type = "simple"
        self.use_knowledge_base = False
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Multimodal Chat Gateway - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /mode, /kb, /image, /history, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the gateway at {self.base_url}.[/red]")
            return

        self.console.print(f"[green]Connected. Conversation {self.conversation_id}[/green]\n")

        try:
            while True:
                user_input = Prompt.ask(f"\n[bold cyan]You[/bold cyan] [dim]({self._status()})[/dim]")
                command, _, argument = user_input.strip().partition(" ")

                if command.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command.lower() == "/help":
                    self._show_help()
                elif command.lower() == "/clear":
                    self.conversation_id = str(uuid.uuid4())
                    self.console.print(f"[yellow]New conversation {self.conversation_id}[/yellow]")
                elif command.lower() == "/mode":
                    self._set_mode(argument.strip())
                elif command.lower() == "/kb":
                    self.use_knowledge_base = argument.strip().lower() == "on"
                    self.console.print(f"[yellow]Knowledge base {'on' if self.use_knowledge_base else 'off'}[/yellow]")
                elif command.lower() == "/image":
                    self._display_response(self._post("/api/chat/image", {"prompt": argument}))
                elif command.lower() == "/history":
                    self._show_history()
                elif user_input.strip():
                    self._display_response(self._post("/api/chat", self._chat_payload(user_input)))

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _status(self) -> str:
        return f"{self.model_type}, kb {'on' if self.use_knowledge_base else 'off'}"

    def _chat_payload(self, prompt: str) -> dict:
        return {
            "prompt": prompt,
            "modelType": self.model_type,
            "useMemory": self.model_type == "memory",
            "useKnowledgeBase": self.use_knowledge_base,
        }

    def _set_mode(self, mode: str) -> None:
        mode = {"tools": "with_tools"}.get(mode, mode)
        if mode not in MODES:
            self.console.print(f"[red]Unknown mode {mode!r}. Use simple, tools or memory.[/red]")
            return
        self.model_type = mode
        self.console.print(f"[yellow]Mode set to {mode}[/yellow]")

    def _test_connection(self) -> bool:
        try:
            return self.client.get(f"{self.base_url}/health").status_code == 200
        except httpx.HTTPError:
            return False

    def _post(self, path: str, payload: dict) -> dict | None:
        """Send a request and unwrap the response envelope."""
        payload = {**payload, "conversationId": self.conversation_id}
        try:
            with self.console.status("[dim]Thinking...[/dim]"):
                response = self.client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return None

        body = response.json()
        if not body.get("success"):
            error = body.get("error", {})
            code = error.get("code", response.status_code)
            self.console.print(f"[red]{code}: {error.get('message', response.text)}[/red]")
            return None
        return body["data"]

    def _display_response(self, data: dict | None) -> None:
        if not data:
            return

        subtitle = data.get("modelUsed", "")
        if data.get("toolsUsed"):
            subtitle += f" | tools: {', '.join(data['toolsUsed'])}"

        body = data.get("message", "")
        for media in data.get("media") or []:
            body += f"\n\n[{media['type']}]({self.base_url}{media['url']})"

        self.console.print(
            Panel(
                Markdown(body),
                title="[bold green]Assistant[/bold green]",
                subtitle=f"[dim]{subtitle}[/dim]",
                border_style="green",
                padding=(1, 2),
            )
        )

    def _show_history(self) -> None:
        try:
            response = self.client.get(f"{self.base_url}/api/conversations/{self.conversation_id}")
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return
        if response.status_code == 404:
            self.console.print("[yellow]No messages yet[/yellow]")
            return

        table = Table(title=f"Conversation {self.conversation_id}")
        table.add_column("Role", style="cyan")
        table.add_column("Content")
        for message in response.json()["data"]["messages"]:
            table.add_row(message["role"], message["content"][:200])
        self.console.print(table)

    def _show_help(self) -> None:
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /mode simple|tools|memory - Choose the conversation mode
• /kb on|off - Toggle the knowledge base tools
• /image <prompt> - Generate an image
• /history - Show the stored conversation
• /clear - Start a new conversation
• /quit or /exit - Exit the chat

[bold]Try:[/bold]
1. "/mode tools" then "/kb on"
2. "I love green tea and I live in Lisbon"
3. "What do you remember about me?"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
