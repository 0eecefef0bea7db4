import statistics
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from edgellm.config import SessionConfig
from edgellm.errors import EdgeLLMError
from edgellm.serving.schemas import ChatMessage
from edgellm.serving.service import InferenceService
from edgellm.utils.logging import setup_logging

app = typer.Typer(pretty_exceptions_show_locals=False, help="On-device text generation.")
console = Console()


def _build_config(
    settings: Path | None,
    model_path: str | None,
    config_path: str | None,
    threads: int | None,
    precision: str | None,
    accelerate: bool | None,
    seed: int | None = None,
) -> SessionConfig:
    config = SessionConfig.from_yaml(settings) if settings else SessionConfig()
    overrides = {
        "model_path": model_path,
        "config_path": config_path,
        "thread_count": threads,
        "precision_mode": precision,
        "use_acceleration": accelerate,
        "seed": seed,
    }
    return config.updated(**{k: v for k, v in overrides.items() if v is not None})


def _open_service(config: SessionConfig, log_level: str) -> InferenceService:
    setup_logging(log_level)
    service = InferenceService(config)
    with console.status("Loading model..."):
        result = service.initialize()
    if not result.success:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(code=1)
    return service


SettingsOption = typer.Option(None, "--settings", help="YAML file with session settings")
ModelOption = typer.Option(None, "--model-path", help="Model file (.onnx, .pt, .ts)")
ConfigOption = typer.Option(None, "--config-path", help="Model JSON configuration")
ThreadsOption = typer.Option(None, "--threads", min=1, help="Intra-op thread count")
PrecisionOption = typer.Option(None, "--precision", help="fp32, fp16, bf16 or int8")
AccelerateOption = typer.Option(None, "--accelerate/--no-accelerate", help="Use GPU execution if available")
LogLevelOption = typer.Option("WARNING", "--log-level", help="Logging level")


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Input prompt"),
    max_tokens: int = typer.Option(128, min=0, help="Maximum number of tokens to generate"),
    temperature: float = typer.Option(0.7, min=0.0, help="Sampling temperature, 0 for greedy"),
    seed: int | None = typer.Option(None, help="Sampling seed"),
    stream: bool = typer.Option(False, help="Print tokens as they are produced"),
    settings: Path | None = SettingsOption,
    model_path: str | None = ModelOption,
    config_path: str | None = ConfigOption,
    threads: int | None = ThreadsOption,
    precision: str | None = PrecisionOption,
    accelerate: bool | None = AccelerateOption,
    log_level: str = LogLevelOption,
):
    """Generate text continuing PROMPT."""
    config = _build_config(settings, model_path, config_path, threads, precision, accelerate, seed)
    service = _open_service(config, log_level)
    try:
        if stream:
            for chunk in service.stream(prompt, max_tokens=max_tokens, temperature=temperature):
                console.print(chunk, end="", markup=False, highlight=False)
            console.print()
        else:
            result = service.generate(prompt, max_tokens=max_tokens, temperature=temperature)
            console.print(result.text, markup=False, highlight=False)
            console.print(f"[dim]{result.execution_time_ms:.0f} ms, ~{result.tokens_generated} tokens[/dim]")
    except EdgeLLMError as e:
        console.print(f"[red]Text generation failed: {e}[/red]")
        raise typer.Exit(code=1) from e
    finally:
        service.destroy()


@app.command()
def chat(
    system: str | None = typer.Option(None, help="System message"),
    max_tokens: int = typer.Option(256, min=0),
    temperature: float = typer.Option(0.7, min=0.0),
    settings: Path | None = SettingsOption,
    model_path: str | None = ModelOption,
    config_path: str | None = ConfigOption,
    threads: int | None = ThreadsOption,
    precision: str | None = PrecisionOption,
    accelerate: bool | None = AccelerateOption,
    log_level: str = LogLevelOption,
):
    """Interactive chat. Type 'exit' or press Ctrl-D to quit."""
    config = _build_config(settings, model_path, config_path, threads, precision, accelerate)
    service = _open_service(config, log_level)
    history: list[ChatMessage] = []
    if system:
        history.append(ChatMessage(role="system", content=system))

    try:
        while True:
            try:
                user_input = console.input("[bold green]You:[/bold green] ")
            except EOFError:
                break
            if user_input.strip().lower() in {"exit", "quit"}:
                break
            if not user_input.strip():
                continue

            history.append(ChatMessage(role="user", content=user_input))
            try:
                result = service.chat(history, max_tokens=max_tokens, temperature=temperature)
            except EdgeLLMError as e:
                console.print(f"[red]Chat failed: {e}[/red]")
                history.pop()
                continue
            history.append(ChatMessage(role="assistant", content=result.response))
            console.print(f"[bold blue]Assistant:[/bold blue] {result.response}", highlight=False)
    finally:
        service.destroy()


@app.command()
def benchmark(
    prompt: str = typer.Option("Hello, world", help="Input prompt"),
    max_tokens: int = typer.Option(50, help="Number of tokens to generate"),
    runs: int = typer.Option(5, min=1, help="Number of benchmark runs"),
    warmup: int = typer.Option(1, min=0, help="Untimed runs before measuring"),
    settings: Path | None = SettingsOption,
    model_path: str | None = ModelOption,
    config_path: str | None = ConfigOption,
    threads: int | None = ThreadsOption,
    precision: str | None = PrecisionOption,
    accelerate: bool | None = AccelerateOption,
    log_level: str = LogLevelOption,
):
    """
    Inference Benchmark.
    """
    config = _build_config(settings, model_path, config_path, threads, precision, accelerate)
    service = _open_service(config, log_level)

    try:
        for _ in range(warmup):
            service.generate(prompt, max_tokens=max_tokens, temperature=0.7)

        latencies = []
        tokens_per_second = []
        for i in range(runs):
            start_time = time.perf_counter()
            result = service.generate(prompt, max_tokens=max_tokens, temperature=0.7)
            latency = time.perf_counter() - start_time

            tps = result.token_count / latency if latency > 0 else 0.0
            latencies.append(latency)
            tokens_per_second.append(tps)
            console.print(f"Run {i + 1}: {latency:.4f}s, {tps:.2f} tokens/s")

        metrics = service.get_performance_metrics()
        table = Table(title="Results")
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Avg Latency", f"{statistics.mean(latencies):.4f}s")
        table.add_row("Avg TPS", f"{statistics.mean(tokens_per_second):.2f} tokens/s")
        table.add_row("Session avg", f"{metrics.average_inference_time_ms:.1f} ms")
        table.add_row("Total inferences", str(metrics.total_inferences))
        table.add_row("Memory peak", f"{metrics.memory_peak_bytes / 1024**2:.1f} MB")
        console.print(table)
    finally:
        service.destroy()


@app.command()
def info(
    model_path: str | None = ModelOption,
    config_path: str | None = ConfigOption,
):
    """Show hardware, system and model file information."""
    service = InferenceService(_build_config(None, model_path, config_path, None, None, None))
    hardware = service.check_hardware_acceleration()
    system = service.get_system_info()
    files = service.check_model_files()

    table = Table(show_header=False)
    table.add_row("Acceleration", f"{hardware.type} ({'available' if hardware.available else 'unavailable'})")
    table.add_row("Device", hardware.device_info)
    table.add_row("Platform", system.platform_version)
    table.add_row("CPU cores", str(system.cpu_cores))
    table.add_row("Available memory", f"{system.available_memory / 1024**2:.0f} MB")
    table.add_row("Features", ", ".join(system.supported_features))
    table.add_row("Model file", f"{service.config.model_path} ({'found' if files.model_exists else 'missing'})")
    table.add_row("Model size", f"{files.model_size / 1024**2:.1f} MB")
    table.add_row("Config file", f"{service.config.config_path} ({'found' if files.config_exists else 'missing'})")
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("edgellm.serving.api:app", host=host, port=port)


if __name__ == "__main__":
    app()
