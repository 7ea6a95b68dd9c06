"""
CLI интерфейс SheLLM.

Этот модуль предоставляет чат с агентом в терминале и служебные команды
для просмотра инвентаря и создания файлов конфигурации.
"""

import asyncio
import signal
from pathlib import Path
from typing import Optional, Dict, Any

import typer
import yaml
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from .main import ShellmApp
from .config.agent_config import AgentConfig, DEFAULT_CONFIG_PATH
from .config.inventory import Inventory
from .models.events import (
    AgentEvent, ReasoningStep, ActionProposed, ActionOutcome,
    TokenUsageUpdated, FinalAnswer, FatalError
)
from .utils.validator import ValidationError

console = Console()
app = typer.Typer(
    name="shellm",
    help="SheLLM - ReAct агент для управления SSH хостами",
    add_completion=False,
    rich_markup_mode="rich"
)

# Глобальные опции, заданные в callback
current_options: Dict[str, Any] = {
    "config_path": None,
    "mock": False,
    "verbose": False
}

# Длинный вывод команды в логе хода обрезается, в память агента он попадает целиком
MAX_OUTCOME_DISPLAY = 2000

CONFIG_ERRORS = (FileNotFoundError, ValueError, PydanticValidationError, ValidationError, yaml.YAMLError)


@app.callback()
def callback(
    config: Optional[str] = typer.Option(
        None,
        "--config", "-c",
        help=f"Путь к файлу конфигурации (по умолчанию {DEFAULT_CONFIG_PATH})"
    ),
    mock: bool = typer.Option(
        False,
        "--mock",
        help="Мок-режим LLM без обращения к API"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Подробный вывод"
    )
):
    """SheLLM - ReAct агент для управления SSH хостами."""
    current_options["config_path"] = config
    current_options["mock"] = mock
    current_options["verbose"] = verbose


def _print_error(title: str, error: Exception):
    console.print(Panel(
        Text(str(error)),
        title=f"[red]{title}[/red]",
        border_style="red"
    ))


def _load_config() -> AgentConfig:
    """Загрузка конфигурации с учетом глобальных опций"""
    try:
        config = AgentConfig.load(current_options["config_path"])
    except CONFIG_ERRORS as e:
        _print_error("Ошибка конфигурации", e)
        raise typer.Exit(1)

    if current_options["verbose"]:
        config.logging.console_level = "DEBUG"
    return config


def _create_app() -> ShellmApp:
    """Создание приложения или выход с кодом 1"""
    config = _load_config()
    try:
        return ShellmApp(config=config, mock_mode=current_options["mock"])
    except CONFIG_ERRORS as e:
        _print_error("Ошибка инициализации", e)
        raise typer.Exit(1)


def _render_event(event: AgentEvent):
    """Отображение одного события хода"""
    if isinstance(event, ReasoningStep):
        if event.text:
            console.print(Text(f"Мысль: {event.text}", style="dim"))
    elif isinstance(event, ActionProposed):
        console.print(Text(f"Вызов: {event.render()}", style="yellow"))
    elif isinstance(event, ActionOutcome):
        text = event.text
        if len(text) > MAX_OUTCOME_DISPLAY:
            text = text[:MAX_OUTCOME_DISPLAY] + f"\n... ({len(event.text) - MAX_OUTCOME_DISPLAY} символов скрыто)"
        console.print(Text(f"Результат: {text}", style="dim"))
    elif isinstance(event, TokenUsageUpdated):
        if current_options["verbose"]:
            console.print(Text(f"Токены: {event.total}", style="dim"))
    elif isinstance(event, FinalAnswer):
        console.print(Panel(
            Markdown(event.text),
            title="[green]SheLLM[/green]",
            border_style="green"
        ))
    elif isinstance(event, FatalError):
        _print_error("Ошибка", event.error)


async def _run_turn(shellm_app: ShellmApp, text: str) -> Optional[AgentEvent]:
    """
    Выполнение одного хода с отображением событий

    Ctrl+C во время хода отменяет контекст хода, а не всю программу.

    Returns:
        Последнее событие хода (FinalAnswer или FatalError)
    """
    events, ctx, task = shellm_app.run_turn(text)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, ctx.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        handler_installed = False

    terminal = None
    try:
        with console.status("[bold cyan]Агент думает...[/bold cyan]", spinner="dots"):
            async for event in events:
                _render_event(event)
                if event.terminal:
                    terminal = event
        await task
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    stats = shellm_app.agent.get_stats()
    console.print(Text(f"Использовано токенов: {stats.total_tokens}", style="dim"))
    return terminal


@app.command()
def chat():
    """Интерактивный чат с агентом."""
    shellm_app = _create_app()

    console.print(Panel(
        "[bold blue]SheLLM - интерактивный режим[/bold blue]\n\n"
        f"Модель: [cyan]{shellm_app.config.llm.model}[/cyan]\n"
        f"Хостов в инвентаре: [cyan]{len(shellm_app.inventory)}[/cyan]\n\n"
        "• [cyan]exit[/cyan] или [cyan]quit[/cyan] - выход\n"
        "• [cyan]Ctrl+C[/cyan] во время хода - прервать ход",
        title="[blue]SheLLM[/blue]",
        border_style="blue"
    ))

    while True:
        try:
            text = Prompt.ask("\n[bold cyan]Вы[/bold cyan]")
        except (KeyboardInterrupt, EOFError):
            console.print("\n[green]До свидания![/green]")
            break

        if text.strip().lower() in ('exit', 'quit', 'выход'):
            console.print("[green]До свидания![/green]")
            break
        if not text.strip():
            continue

        asyncio.run(_run_turn(shellm_app, text))


@app.command()
def ask(
    text: str = typer.Argument(..., help="Сообщение агенту")
):
    """Выполнить один ход и выйти."""
    shellm_app = _create_app()
    terminal = asyncio.run(_run_turn(shellm_app, text))

    if not isinstance(terminal, FinalAnswer):
        raise typer.Exit(1)


@app.command()
def hosts():
    """Показать хосты из инвентаря (без учетных данных)."""
    config = _load_config()
    try:
        inventory = Inventory.load(config.inventory.inventory_path, config.inventory.secrets_path)
    except CONFIG_ERRORS as e:
        _print_error("Ошибка инвентаря", e)
        raise typer.Exit(1)

    if len(inventory) == 0:
        console.print("[yellow]Инвентарь пуст[/yellow]")
        return

    table = Table(title=f"[bold blue]Хосты ({len(inventory)})[/bold blue]")
    table.add_column("ID", style="cyan")
    table.add_column("Адрес")
    table.add_column("Описание")
    table.add_column("Теги", style="magenta")

    for host in inventory.list_hosts():
        table.add_row(host.id, host.address, host.description, ", ".join(host.tags))

    console.print(table)


@app.command()
def status():
    """Показать конфигурацию агента и доступность LLM API."""
    shellm_app = _create_app()
    app_status = shellm_app.get_status()

    table = Table(title="[bold green]Статус SheLLM[/bold green]")
    table.add_column("Параметр", style="cyan")
    table.add_column("Значение", style="white")

    table.add_row("Модель", app_status["model"])
    table.add_row("API", shellm_app.config.llm.base_url)
    table.add_row("Хостов в инвентаре", str(app_status["hosts"]))
    table.add_row("Инструменты", ", ".join(sorted(app_status["tools"])))
    table.add_row("Лимит итераций", str(shellm_app.config.agent.max_iterations))
    table.add_row("Таймаут хода", f"{shellm_app.config.agent.turn_timeout}с")

    with console.status("[bold cyan]Проверка LLM API...[/bold cyan]", spinner="dots"):
        available = shellm_app.llm.is_available()
    status_text = "[green]✓ Доступен[/green]" if available else "[red]✗ Недоступен[/red]"
    table.add_row("LLM API", status_text)

    console.print(table)

    if not available:
        raise typer.Exit(1)


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force", "-f",
        help="Перезаписать существующие файлы"
    )
):
    """Создать примеры файлов конфигурации, инвентаря и секретов."""
    config_path = Path(current_options["config_path"] or DEFAULT_CONFIG_PATH)
    defaults = AgentConfig()

    files = [
        (config_path, _default_config()),
        (Path(defaults.inventory.inventory_path), _default_inventory()),
        (Path(defaults.inventory.secrets_path), _default_secrets()),
    ]

    for path, content in files:
        if path.exists() and not force:
            console.print(f"[yellow]• Пропущен[/yellow] {path} (уже существует)")
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(content, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        console.print(f"[green]✓ Создан[/green] {path}")

    console.print(Panel(
        "[bold]Следующие шаги:[/bold]\n"
        f"1. Укажите API ключ в [cyan]{config_path}[/cyan] или в [cyan]SHELLM_API_KEY[/cyan]\n"
        "2. Опишите хосты в [cyan]inventory[/cyan] и учетные данные в [cyan]secrets[/cyan]\n"
        "3. Проверьте инвентарь: [cyan]shellm hosts[/cyan]\n"
        "4. Запустите чат: [cyan]shellm chat[/cyan]",
        title="[green]Инициализация завершена[/green]",
        border_style="green"
    ))


def _default_config() -> Dict[str, Any]:
    """Конфигурация по умолчанию."""
    return {
        "llm": {
            "api_key": "your-api-key-here",
            "base_url": "https://openrouter.ai/api/v1",
            "model": "google/gemini-2.5-pro",
            "temperature": 0.2,
            "timeout": 60
        },
        "agent": {
            "max_iterations": 10,
            "turn_timeout": 60
        },
        "inventory": {
            "inventory_path": "./inventory",
            "secrets_path": "./secrets"
        },
        "ssh": {
            "connect_timeout": 5,
            "insecure_ignore_host_keys": False
        },
        "logging": {
            "level": "INFO",
            "log_file": "logs/shellm.log",
            "error_file": "logs/errors.log"
        }
    }


def _default_inventory() -> list:
    """Пример инвентаря."""
    return [
        {
            "id": "web1",
            "host": "192.168.1.10",
            "port": 22,
            "secretRef": "deploy-key",
            "description": "Example web server",
            "tags": ["web", "prod"]
        },
        {
            "id": "db1",
            "host": "192.168.1.20",
            "port": 22,
            "secretRef": "db-password",
            "description": "Example database server",
            "tags": ["db"]
        }
    ]


def _default_secrets() -> list:
    """Пример хранилища секретов."""
    return [
        {
            "id": "deploy-key",
            "type": "keyfile",
            "user": "deploy",
            "filepath": "~/.ssh/id_ed25519"
        },
        {
            "id": "db-password",
            "type": "password",
            "user": "admin",
            "passwordEnvKey": "SHELLM_DB1_PASSWORD"
        }
    ]


def main():
    """Главная точка входа для CLI."""
    app()


if __name__ == "__main__":
    main()
