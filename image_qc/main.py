import argparse
import logging
import sys
from pathlib import Path

from . import config
from .core import QCApp
from .exceptions import ImageQCError
from .processing.progress import TqdmProgressObserver
from .project_spec import load_project_spec
from .tools.exiftool import ExifToolAdapter
from .tools.jhove import JhoveAdapter

def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file next to the database."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "image_qc.log"

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

def _add_tool_args(p: argparse.ArgumentParser):
    p.add_argument("--exiftool", default=config.EXIFTOOL_BINARY, help="ExifTool executable")
    p.add_argument("--jhove", default=config.JHOVE_BINARY, help="JHOVE executable")
    p.add_argument("--chunk-size", type=int, default=config.DEFAULT_CHUNK_SIZE, help="Files per ExifTool call")
    p.add_argument("--checkpoint", type=Path, default=None, help="Progress checkpoint JSON (default: <db dir>/progress.json)")
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar")

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Image QC: validate image batches against a project spec")
    p.add_argument("--db", type=Path, default=Path("image_qc.db"), help="SQLite results database")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    v = sub.add_parser("validate", help="Validate every image under a directory")
    v.add_argument("src", type=Path, help="Directory to scan")
    v.add_argument("spec", type=Path, help="Project spec (YAML or JSON)")
    _add_tool_args(v)

    r = sub.add_parser("resume", help="Continue an interrupted run from its checkpoint")
    r.add_argument("src", type=Path, help="Directory that was being validated")
    r.add_argument("spec", type=Path, help="Project spec (YAML or JSON)")
    r.add_argument("--run", type=int, default=None, help="Run id (default: latest incomplete run)")
    _add_tool_args(r)

    c = sub.add_parser("compare", help="Compare two validation runs")
    c.add_argument("run_a", type=int)
    c.add_argument("run_b", type=int)

    return p.parse_args(argv)

def _build_app(args) -> QCApp:
    spec = load_project_spec(args.spec)
    exiftool = ExifToolAdapter(exiftool_path=args.exiftool)
    jhove = JhoveAdapter(jhove_path=args.jhove)

    if not exiftool.is_installed():
        logging.warning(f"ExifTool not found ({args.exiftool}); every file will fail extraction")
    if spec.validation.run_jhove and not jhove.is_installed():
        logging.warning(f"JHOVE not found ({args.jhove}); TIFF format checks will report errors")

    return QCApp(args.db, spec, exiftool=exiftool, jhove=jhove)

def _print_run(run, result):
    print(f"Run {run.id} (version {run.version})")
    print(f"  Images:    {run.total_images}")
    print(f"  Passed:    {run.passed}")
    print(f"  Failed:    {run.failed}")
    print(f"  Errors:    {len(result.errors)}")
    print(f"  Duration:  {result.duration:.1f}s")

def _print_comparison(comparison):
    summary = comparison.summary()
    print(f"Run {comparison.run_a.id} -> Run {comparison.run_b.id}")
    for key in ('fixed', 'new_failures', 'still_failing', 'unchanged'):
        print(f"  {key.replace('_', ' ').title():<15} {summary[key]}")
    print(f"  Net change:     {summary['net_change']:+d}")
    for comp in comparison.new_failures:
        print(f"  NEW  {comp.filepath}: {'; '.join(comp.failures_b)}")

def main(argv=None):
    args = parse_args(argv)

    db_path = args.db.resolve()
    setup_logging(db_path.parent, args.verbose)
    logging.info(f"=== Image QC: {args.command} ===")

    observer = None
    try:
        if args.command == "compare":
            app = QCApp(db_path, spec=None)
            _print_comparison(app.compare(args.run_a, args.run_b))
            return 0

        args.db = db_path
        app = _build_app(args)
        checkpoint = args.checkpoint or db_path.parent / "progress.json"
        observer = None if args.no_progress else TqdmProgressObserver()

        if args.command == "validate":
            run, result = app.validate_directory(
                args.src.resolve(), checkpoint_path=checkpoint,
                chunk_size=args.chunk_size, on_progress=observer,
            )
        else:
            run, result = app.resume(
                args.src.resolve(), checkpoint, run_id=args.run,
                chunk_size=args.chunk_size, on_progress=observer,
            )
        _print_run(run, result)
        return 0 if run.failed == 0 else 1

    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user. Progress checkpoint saved.")
        return 130
    except ImageQCError as e:
        logging.error(str(e))
        return 2
    except Exception:
        logging.exception("Fatal error during validation.")
        return 2
    finally:
        if observer is not None:
            observer.close()

if __name__ == "__main__":
    sys.exit(main())
