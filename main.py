"""
Market State Engine

Usage:
  python main.py input.json            # Run one cycle, print report, save state
  python main.py input.json --dry-run  # Compute and print, do not save state
  python main.py input.json --json     # Print full JSON output instead of report
  python main.py --reset               # Reset prior-cycle state
"""

import sys
import json
import logging

from dotenv import load_dotenv

# Load .env if exists (MARKET_STATE_DIR for local runs)
load_dotenv()

import settings as cfg
from engine import MarketStateEngine, default_state, load_state, save_output, save_state
from report import format_report

# ── Logging ───────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = set(a for a in argv if a.startswith("--"))
    paths = [a for a in argv if not a.startswith("--")]

    # Reset state
    if "--reset" in args:
        logger.info("Resetting engine state...")
        save_state(default_state())
        logger.info("Done. State reset to defaults.")
        return 0

    if not paths:
        logger.error("No input document given")
        print(__doc__)
        return 1

    dry_run = "--dry-run" in args

    # ── 1. Read input ─────────────────────────────────────
    try:
        with open(paths[0]) as f:
            raw_data = json.load(f)
    except Exception as e:
        logger.error(f"Input load failed: {e}")
        return 1

    # ── 2. Run engine ─────────────────────────────────────
    logger.info("=" * 50)
    logger.info(f"MARKET STATE ENGINE v{cfg.MODEL_VERSION}")
    logger.info("=" * 50)

    engine = MarketStateEngine(load_state())
    output = engine.process(raw_data)

    # ── 3. Print ──────────────────────────────────────────
    if "--json" in args:
        print(json.dumps(output, indent=2, ensure_ascii=False))
    else:
        print("\n" + format_report(output))

    # ── 4. Save ───────────────────────────────────────────
    if dry_run:
        logger.info("Dry run — state not saved")
    else:
        try:
            save_state(engine.next_state(output))
            output_file = save_output(output)
            logger.info(f"Full output saved to {output_file}")
        except Exception as e:
            logger.error(f"State save failed: {e}")
            return 1

    # ── 5. Summary ────────────────────────────────────────
    regime = output["regime"]
    btc = output["btc"]
    logger.info("-" * 50)
    logger.info(f"REGIME: {regime['regime']} ({regime['status']}) | "
                f"Conf: {regime['confidence_percent']:.0f}%")
    logger.info(f"BTC: {btc['state']} ({btc['confidence']}) | "
                f"Liquidity: {btc['liquidity_tag']} | "
                f"ETF: {output['etf_flow']['tag']['tag']}")

    missing = btc["evidence"]["missing_fields"]
    if missing:
        logger.warning(f"Missing fields: {', '.join(missing)}")

    logger.info("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
