#!/usr/bin/env python3
"""
Command-line interface for formgrid.

Pages are read from the JSON primitive format accepted by
``formgrid.core.pipeline.load_pages``; results are written as JSON.
"""

import json
from pathlib import Path
from typing import Optional

import click

from formgrid.core.batch import BatchProcessor
from formgrid.core.pipeline import FieldDetectionPipeline, PipelineConfig, load_pages
from formgrid.core.suggestions import LearningStore, SuggestionEngine
from formgrid.utils.exceptions import FormGridError
from formgrid.utils.logging_config import setup_logging


def _emit(data, output: Optional[str]) -> None:
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if output:
        Path(output).write_text(text, encoding="utf-8")
        click.echo(f"Results saved to: {output}", err=True)
    else:
        click.echo(text)


def _load_config(config_path: Optional[str]) -> PipelineConfig:
    return PipelineConfig.from_file(config_path) if config_path else PipelineConfig()


def _engine(store_path: Optional[str], config: PipelineConfig) -> SuggestionEngine:
    cfg = config.suggestions
    limits = dict(max_records=cfg.max_records, keep_recent=cfg.keep_recent, keep_confident=cfg.keep_confident)
    if store_path and Path(store_path).exists():
        store = LearningStore.load(store_path, **limits)
    else:
        store = LearningStore(**limits)
    return SuggestionEngine(store=store, config=cfg)


@click.group()
@click.option('--log-level', default='WARNING', show_default=True,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level (FORMGRID_LOG_LEVEL overrides)')
@click.option('--log-file', type=click.Path(), help='Also write logs to this file')
def cli(log_level: str, log_file: Optional[str]):
    """formgrid - reconstruct form fields from positioned document primitives."""
    setup_logging(level=log_level, log_file=Path(log_file) if log_file else None)


@cli.command()
@click.argument('pages_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--mode', type=click.Choice(['grid', 'label-value', 'table']), default='grid',
              show_default=True, help='Detection mode')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Pipeline config JSON')
@click.option('--context', '-c', multiple=True, help='Document context term (repeatable)')
@click.option('--store', 'store_path', type=click.Path(dir_okay=False),
              help='Learning store used to refine field types')
@click.option('--refine/--no-refine', default=True, help='Refine field types with suggestions')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write JSON here instead of stdout')
def reconstruct(pages_path: str, mode: str, config_path: Optional[str], context: tuple,
                store_path: Optional[str], refine: bool, output: Optional[str]):
    """Detect fields in a JSON page file."""
    try:
        config = _load_config(config_path)
        config.refine_types = refine
        engine = _engine(store_path, config) if refine else None
        pipeline = FieldDetectionPipeline(config, engine=engine)
        pages = load_pages(pages_path)

        if mode == 'grid':
            result = [f.to_dict() for f in pipeline.process_document(pages, list(context))]
        elif mode == 'label-value':
            result = [f.to_dict() for page in pages for f in pipeline.label_value_fields(page)]
        else:
            result = []
            for page in pages:
                structure = pipeline.table_structure(page)
                result.append({
                    "page_index": page.page_index,
                    "columns": structure.columns,
                    "rows": structure.rows,
                    "suggested_fields": [f.to_dict() for f in structure.suggested_fields],
                })
    except FormGridError as e:
        raise click.ClickException(str(e))

    _emit(result, output)


@cli.command()
@click.argument('texts', nargs=-1, required=True)
@click.option('--context', '-c', multiple=True, help='Document context term (repeatable)')
@click.option('--store', 'store_path', type=click.Path(dir_okay=False), help='Learning store JSON')
def suggest(texts: tuple, context: tuple, store_path: Optional[str]):
    """Suggest field types for one or more label texts."""
    try:
        engine = _engine(store_path, PipelineConfig())
        results = engine.generate_bulk_suggestions([{"text": t, "context": list(context)} for t in texts])
    except FormGridError as e:
        raise click.ClickException(str(e))

    _emit([dict(text=t, **r.to_dict()) for t, r in zip(texts, results)], None)


@cli.command()
@click.argument('text')
@click.argument('field_type', type=click.Choice(['text', 'number', 'date', 'select', 'checkbox'],
                                                case_sensitive=False))
@click.option('--context', '-c', multiple=True, help='Document context term (repeatable)')
@click.option('--rejected', is_flag=True, help='Record the choice as rejected')
@click.option('--store', 'store_path', type=click.Path(dir_okay=False), required=True,
              help='Learning store JSON (created if missing)')
def record(text: str, field_type: str, context: tuple, rejected: bool, store_path: str):
    """Record a user's field type choice in the learning store."""
    try:
        engine = _engine(store_path, PipelineConfig())
        stored = engine.record_user_choice(text, list(context), field_type, accepted=not rejected)
        engine.store.save(store_path)
    except FormGridError as e:
        raise click.ClickException(str(e))

    click.echo(f"Recorded '{stored.chosen_type.value}' for '{text}' "
               f"(confidence {stored.confidence:.1f}, {len(engine.store)} records)")


@cli.command()
@click.argument('pages_paths', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--workers', type=int, default=4, show_default=True, help='Documents processed concurrently')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Pipeline config JSON')
@click.option('--context', '-c', multiple=True, help='Document context term (repeatable)')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write JSON here instead of stdout')
def batch(pages_paths: tuple, workers: int, config_path: Optional[str], context: tuple,
          output: Optional[str]):
    """Detect fields in many JSON page files."""
    try:
        pipeline = FieldDetectionPipeline(_load_config(config_path))
        processor = BatchProcessor(pipeline, max_workers=workers, context=list(context))
        items = processor.process_batch(
            list(pages_paths),
            on_progress=lambda done, total, item: click.echo(
                f"[{done}/{total}] {item.name}: {item.status}", err=True
            ),
        )
    except FormGridError as e:
        raise click.ClickException(str(e))

    _emit({
        "items": [item.to_dict() for item in items],
        "stats": BatchProcessor.get_processing_stats(items),
    }, output)


@cli.command()
@click.option('--store', 'store_path', type=click.Path(dir_okay=False), help='Learning store JSON')
@click.option('--clear', is_flag=True, help='Reset the store to the default knowledge')
def stats(store_path: Optional[str], clear: bool):
    """Show learning statistics."""
    try:
        engine = _engine(store_path, PipelineConfig())
        if clear:
            engine.clear_learning_data()
            if store_path:
                engine.store.save(store_path)
        summary = engine.get_learning_stats()
    except FormGridError as e:
        raise click.ClickException(str(e))

    _emit(summary, None)


if __name__ == '__main__':
    cli()
