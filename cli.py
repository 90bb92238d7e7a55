import sys
import logging
import argparse
import asyncio
from pathlib import Path

# Ensure Python finds the 'po_extractor' package when run from a checkout
sys.path.append(str(Path(__file__).parent))

# ==========================================
#             HELPER FUNCTIONS
# ==========================================

def setup_logging(debug_mode: bool, log_file: str = "extraction.log"):
    """Configures logging for the command line run."""
    level = logging.DEBUG if debug_mode else logging.INFO
    format_str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence noisy libraries
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("pypdf").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def build_parser():
    parser = argparse.ArgumentParser(description="Purchase order / invoice PDF to Excel extractor")
    parser.add_argument("files", nargs="*", help="PDF files to process (default: every PDF in the input folder)")
    parser.add_argument("--type", dest="document_type", choices=["purchase-order", "invoice"],
                        help="Document type (default: DOCUMENT_TYPE from the config file)")
    parser.add_argument("--multi-page", action="store_true", default=None,
                        help="Combine the pages of each invoice into one workbook")
    parser.add_argument("--input", help="Input folder with PDFs")
    parser.add_argument("--output", help="Output folder for Excel files")
    parser.add_argument("--config", default="config.txt", help="Path to the config file")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    logger = logging.getLogger(__name__)

    from po_extractor.core.config_loader import Config
    from po_extractor.core.file_utils import FileSystemManager
    from po_extractor.core.pipeline import PipelineOrchestrator
    from po_extractor.core.reporter import ReportGenerator
    from po_extractor.extractors.models import DocumentKind

    settings = Config(args.config)
    processing = settings.get_processing_settings()
    paths = settings.get_paths()

    input_dir = args.input or paths["input_dir"]
    output_dir = args.output or paths["output_dir"]
    kind = DocumentKind.parse(args.document_type or processing["document_type"])
    multi_page = processing["multi_page"] if args.multi_page is None else args.multi_page

    fs = FileSystemManager(input_dir, output_dir)
    orchestrator = PipelineOrchestrator.from_config(
        settings, fs=fs, reporter=ReportGenerator(output_dir)
    )

    files = [Path(f) for f in args.files] or fs.scan_inputs()
    if not files:
        logger.info("No files to process.")
        return 0

    try:
        summary = asyncio.run(orchestrator.run(files, kind, multi_page=multi_page))
    except KeyboardInterrupt:
        logger.info("Exiting...")
        return 130

    for path in summary.exports:
        logger.info(f"✅ EXPORTED: {path}")
    return 0 if summary.completed_cleanly else 1


# ==========================================
#               ENTRY POINT
# ==========================================

if __name__ == "__main__":
    sys.exit(main())
