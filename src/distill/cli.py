"""Distill CLI 入口

提供命令行操作接口。
支持远程 GitHub 仓库（--repo）和本地检出目录（--local）两种访问模式。
"""

import asyncio
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from distill.core.config import get_settings
from distill.core.exceptions import DistillError
from distill.gateway.base import RepositoryGateway, RepositoryRef

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


# ==================== 全局状态 ====================


class CLIState:
    """CLI 全局状态

    存储仓库访问相关的全局配置。
    """

    repo: str | None = None
    branch: str = "main"
    local: Path | None = None


state = CLIState()


def build_target() -> tuple[RepositoryGateway, RepositoryRef]:
    """根据全局状态创建网关和仓库定位

    --local 优先于 --repo。
    """
    from distill.gateway import GitHubGateway, LocalGateway

    if state.local is not None:
        gateway = LocalGateway(state.local)
        ref = RepositoryRef(owner="local", repo=gateway.root.name or "repo", branch=state.branch)
        return gateway, ref

    if not state.repo:
        console.print("[red]请通过 --repo OWNER/REPO 或 --local PATH 指定仓库[/red]")
        raise typer.Exit(1)

    try:
        ref = RepositoryRef.parse(state.repo, branch=state.branch)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    settings = get_settings()
    gateway = GitHubGateway(
        token=settings.github_token,
        api_url=settings.github_api_url,
        timeout=settings.request_timeout,
    )
    return gateway, ref


async def close_gateway(gateway: RepositoryGateway) -> None:
    close = getattr(gateway, "close", None)
    if close is not None:
        await close()


def run_capability(name: str, raw_input: dict[str, Any], json_output: bool) -> None:
    """执行单个能力并输出结果（与模型看到的文本一致）"""
    from distill.capabilities import CapabilityExecutor, ExecutionOptions, format_result

    raw_input = {k: v for k, v in raw_input.items() if v is not None}

    async def _run():
        gateway, ref = build_target()
        try:
            executor = CapabilityExecutor(gateway, ref, ExecutionOptions.from_settings(get_settings()))
            return await executor.execute(name, raw_input)
        finally:
            await close_gateway(gateway)

    try:
        call = asyncio.run(_run())
    except DistillError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(call.to_dict(), ensure_ascii=False, indent=2))
    else:
        console.print(format_result(call), markup=False, highlight=False)

    if not call.success:
        raise typer.Exit(1)


# ==================== CLI 应用 ====================


app = typer.Typer(
    name="distill",
    help="Distill - 代码仓库任务分析 Agent",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    repo: Annotated[
        str | None,
        typer.Option(
            "--repo",
            "-R",
            help="GitHub 仓库（OWNER/REPO）",
            envvar="DISTILL_REPO",
        ),
    ] = None,
    branch: Annotated[
        str,
        typer.Option(
            "--branch",
            "-b",
            help="分支名",
            envvar="DISTILL_BRANCH",
        ),
    ] = "main",
    local: Annotated[
        Path | None,
        typer.Option(
            "--local",
            "-L",
            help="使用本地检出目录代替 GitHub（无索引搜索，总是扫描）",
            file_okay=False,
            dir_okay=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="日志级别（DEBUG / INFO / WARNING / ERROR）",
        ),
    ] = None,
):
    """Distill CLI - 代码仓库任务分析 Agent

    示例:
        # 分析 GitHub 仓库中的任务
        distill --repo octocat/hello-world analyze "Add price rounding"

        # 在本地目录上直接运行能力
        distill --local . ls src --depth 2
        distill --local . search "formatPrice" --pattern "*.ts"
    """
    state.repo = repo
    state.branch = branch
    state.local = local

    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=(log_level or get_settings().log_level).upper())


class TaskType(str, Enum):
    """工作项类型"""
    feature = "feature"
    bugfix = "bugfix"
    modification = "modification"
    refactor = "refactor"


@app.command()
def analyze(
    title: str = typer.Argument(..., help="任务标题"),
    description: str = typer.Option("", "--description", "-d", help="任务详细描述"),
    task_type: TaskType = typer.Option(TaskType.feature, "--type", "-t", help="任务类型"),
    complexity: str = typer.Option("medium", "--complexity", "-c", help="预估复杂度"),
    model: str = typer.Option(None, "--model", "-m", help="覆盖默认模型"),
    max_iterations: int = typer.Option(None, "--max-iterations", help="覆盖最大迭代次数"),
    max_tokens: int = typer.Option(None, "--max-tokens", help="覆盖单次调用的最大输出 token"),
    temperature: float = typer.Option(None, "--temperature", help="覆盖采样温度（0-1）"),
    output: Path = typer.Option(None, "--output", "-o", help="产物 JSON 输出文件（默认 stdout）"),
    thinking: bool = typer.Option(False, "--thinking", help="显示模型中间文本"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="显示迭代进度"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="静默模式：只输出产物"),
):
    """分析任务并生成实现指导产物

    示例:
        distill -R octocat/hello-world analyze "Add price rounding" -d "Round up to EUR"
        distill -L . analyze "Fix crash on empty list" -t bugfix -o artifact.json
    """
    from distill.agent import (
        AnalysisRequest,
        ConsoleSubscriber,
        EventEmitter,
        LoggingSubscriber,
        WorkItem,
        run_analysis,
    )

    async def run_analyze():
        gateway, ref = build_target()
        subscribers: list = [LoggingSubscriber()]
        if not quiet:
            subscribers.append(ConsoleSubscriber(Console(stderr=True), verbose=verbose or thinking))
        emitter = EventEmitter(subscribers=subscribers)

        request = AnalysisRequest(
            repository=ref,
            task=WorkItem(
                title=title,
                description=description,
                type=task_type.value,
                complexity=complexity,
            ),
        )
        try:
            return await run_analysis(
                request,
                emitter=emitter,
                gateway=gateway,
                model=model,
                max_iterations=max_iterations,
                max_tokens=max_tokens,
                temperature=temperature,
                include_thinking=thinking or None,
            )
        finally:
            await close_gateway(gateway)

    try:
        outcome = asyncio.run(run_analyze())
    except DistillError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)

    if not quiet:
        stats = outcome.stats
        table = Table(title=f"会话 {outcome.session_id}", show_header=False)
        table.add_column("项目", style="cyan")
        table.add_column("值")
        table.add_row("迭代次数", str(stats.iterations))
        table.add_row("能力调用", str(stats.tool_calls))
        table.add_row("Token（输入/输出）", f"{stats.input_tokens} / {stats.output_tokens}")
        table.add_row("耗时", f"{stats.duration_ms / 1000:.1f}s")
        table.add_row("待创建文件", str(len(outcome.artifact.files_to_create)))
        table.add_row("待修改文件", str(len(outcome.artifact.files_to_modify)))
        if not stats.artifact_parsed:
            table.add_row("产物", "[yellow]降级（无法解析结构化输出）[/yellow]")
        Console(stderr=True).print(table)

    payload = json.dumps(outcome.artifact.to_wire(), ensure_ascii=False, indent=2)
    if output:
        output.write_text(payload, encoding="utf-8")
        if not quiet:
            console.print(f"[green]产物已写入 {output}[/green]")
    else:
        typer.echo(payload)


@app.command("ls")
def list_directory(
    path: str = typer.Argument("", help="目录路径（默认仓库根目录）"),
    depth: int = typer.Option(None, "--depth", "-d", help="递归深度"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON 格式输出"),
):
    """列出目录内容"""
    run_capability("list_dir", {"path": path, "maxDepth": depth}, json_output)


@app.command("read")
def read(
    path: str = typer.Argument(..., help="文件路径"),
    start: int = typer.Option(None, "--start", "-s", help="起始行（1 起）"),
    end: int = typer.Option(None, "--end", "-e", help="结束行（含）"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON 格式输出"),
):
    """读取文件（带行号）"""
    run_capability("read_file", {"path": path, "startLine": start, "endLine": end}, json_output)


@app.command()
def search(
    query: str = typer.Argument(..., help="搜索关键词"),
    pattern: str = typer.Option(None, "--pattern", "-p", help="文件 glob（逗号分隔多个，如 '*.ts,*.tsx'）"),
    limit: int = typer.Option(None, "--limit", "-l", help="结果数量"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON 格式输出"),
):
    """搜索代码"""
    run_capability(
        "search_code",
        {"query": query, "filePattern": pattern, "maxResults": limit},
        json_output,
    )


@app.command()
def imports(
    path: str = typer.Argument(..., help="文件路径"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON 格式输出"),
):
    """分析文件的导入与导出"""
    run_capability("get_imports", {"path": path}, json_output)


@app.command()
def schema():
    """输出模型可见的能力 schema（JSON）"""
    from distill.capabilities import get_capability_schema

    typer.echo(json.dumps(get_capability_schema(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    app()
