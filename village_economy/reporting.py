from __future__ import annotations

import sqlite3
from pathlib import Path

import matplotlib.pyplot as plt


class ReportGenerator:
    def __init__(self, db_path: Path, output_dir: Path) -> None:
        self.db_path = Path(db_path)
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        (self.output_dir / "charts").mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------ #
    def load_data(self):
        conn = sqlite3.connect(self.db_path)
        cur = conn.cursor()
        cur.execute("SELECT * FROM snapshots ORDER BY tick ASC")
        snap_rows = cur.fetchall()
        snap_cols = [d[0] for d in cur.description]

        cur.execute("SELECT error_type, COUNT(*) FROM integrity_errors GROUP BY error_type")
        errors = cur.fetchall()

        cur.execute("SELECT * FROM run_meta")
        run_meta = cur.fetchone()
        meta_cols = [d[0] for d in cur.description]
        conn.close()

        snapshots = [dict(zip(snap_cols, row)) for row in snap_rows]
        meta = dict(zip(meta_cols, run_meta)) if run_meta else {}
        return snapshots, errors, meta

    # ------------------------------------------------------------------ #
    def plot_population(self, snapshots):
        if not snapshots:
            return None
        ticks = [s["tick"] for s in snapshots]

        fig, ax = plt.subplots(figsize=(8, 4))
        ax.plot(ticks, [s["total_population"] for s in snapshots], label="Total", color="#4e79a7")
        ax.fill_between(
            ticks,
            [s["p10_population"] for s in snapshots],
            [s["p90_population"] for s in snapshots],
            alpha=0.3,
            color="#59a14f",
            label="Village p10-p90",
        )
        ax.set_xlabel("Tick")
        ax.set_ylabel("Population")
        ax.legend()
        path = self.output_dir / "charts" / "population.png"
        fig.tight_layout()
        fig.savefig(path)
        plt.close(fig)
        return path

    def plot_balance_levels(self, snapshots):
        if not snapshots:
            return None
        ticks = [s["tick"] for s in snapshots]
        colours = {
            "surplus": "#59a14f",
            "balanced": "#4e79a7",
            "shortage": "#f28e2b",
            "critical": "#e15759",
        }

        fig, ax = plt.subplots(figsize=(8, 4))
        ax.stackplot(
            ticks,
            *[[s[f"{level}_count"] for s in snapshots] for level in colours],
            labels=list(colours),
            colors=list(colours.values()),
        )
        ax.set_xlabel("Tick")
        ax.set_ylabel("Village resources")
        ax.legend(loc="upper left")
        path = self.output_dir / "charts" / "balance_levels.png"
        fig.tight_layout()
        fig.savefig(path)
        plt.close(fig)
        return path

    def plot_errors(self, errors):
        if not errors:
            return None
        labels = [row[0] for row in errors]
        counts = [row[1] for row in errors]

        fig, ax = plt.subplots(figsize=(5, 4))
        ax.bar(labels, counts, color="#9c755f", edgecolor="black")
        ax.set_title("Integrity errors by type")
        path = self.output_dir / "charts" / "errors.png"
        fig.tight_layout()
        fig.savefig(path)
        plt.close(fig)
        return path

    def write_html(self, meta, charts):
        html_path = self.output_dir / "summary.html"
        parts = ["<html><head><title>Village Economy Report</title></head><body>"]
        parts.append("<h1>Run summary</h1>")
        parts.append("<ul>")
        for key, value in meta.items():
            parts.append(f"<li><b>{key}</b>: {value}</li>")
        parts.append("</ul>")

        for title, path in charts:
            if path is None:
                continue
            rel = Path("charts") / Path(path).name
            parts.append(f"<h2>{title}</h2><img src='{rel}' alt='{title}' style='max-width: 100%;'>")

        parts.append("</body></html>")
        html_path.write_text("\n".join(parts), encoding="utf-8")
        return html_path

    def generate(self):
        snapshots, errors, meta = self.load_data()
        charts = [
            ("Population over time", self.plot_population(snapshots)),
            ("Balance levels", self.plot_balance_levels(snapshots)),
            ("Integrity errors", self.plot_errors(errors)),
        ]
        return self.write_html(meta, charts)


def generate_report(db_path: Path, output_dir: Path) -> Path:
    generator = ReportGenerator(db_path, output_dir)
    return generator.generate()


__all__ = ["generate_report", "ReportGenerator"]
