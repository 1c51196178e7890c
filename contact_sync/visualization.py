"""
Contact Sync — Visualization Module.

Dual rendering engine for contact-map visualization:
    - PlotlyRenderer: Interactive contact map and chart visualizations
    - MatplotlibRenderer: Static publication-quality figures

The 3-D structure view is rendered by ``PlotlyScene.figure``.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import plotly.graph_objects as go
from plotly.subplots import make_subplots

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from contact_sync.analysis import (
    DatasetComparisonResult,
    PredictionAnalysis,
    TopNSweepAnalysis,
)
from contact_sync.contact_engine import CONTACT_COLORS, CONTACT_RANGES, CouplingScore
from contact_sync.selection import SelectionState


# ═══════════════════════════════════════════════════════════════════════
# Color helpers
# ═══════════════════════════════════════════════════════════════════════

OBSERVED_COLOR = "#B0BEC5"
CORRECT_COLOR = "#1565C0"
INCORRECT_COLOR = "#F44336"
LOCKED_COLOR = "#212121"
HOVER_COLOR = "rgba(255,152,0,0.35)"


def _symmetric(scores: Sequence[CouplingScore]) -> Tuple[List[int], List[int], List[List[int]]]:
    """Points for both triangles of the map, with (i, j) as customdata."""
    xs, ys, custom = [], [], []
    for s in scores:
        xs.extend([s.i, s.j])
        ys.extend([s.j, s.i])
        custom.extend([[s.i, s.j], [s.i, s.j]])
    return xs, ys, custom


# ═══════════════════════════════════════════════════════════════════════
# PlotlyRenderer
# ═══════════════════════════════════════════════════════════════════════


class PlotlyRenderer:
    """Interactive Plotly visualizations for contact predictions."""

    @staticmethod
    def contact_map(
        analysis: PredictionAnalysis,
        state: Optional[SelectionState] = None,
        title: Optional[str] = None,
        height: int | None = None,
        marker_size: float = 6.0,
    ) -> go.Figure:
        """Symmetric contact map of observed contacts and top-N predictions.

        Parameters
        ----------
        analysis : PredictionAnalysis
        state : SelectionState, optional
            Locked pairs are drawn as outlined squares; candidate and
            hovered residues as guide lines.
        title : str, optional
        height : int | None
            Figure height in pixels. If None, uses Plotly default.
        marker_size : float

        Returns
        -------
        go.Figure
            Every point carries ``[i, j]`` as customdata.
        """
        pred = analysis.prediction
        fig = go.Figure()

        layers = [
            ("Observed", analysis.classification.observed, OBSERVED_COLOR, marker_size),
            ("Incorrect prediction", pred.incorrect, INCORRECT_COLOR, marker_size * 0.8),
            ("Correct prediction", pred.correct, CORRECT_COLOR, marker_size * 0.8),
        ]
        for name, scores, color, size in layers:
            xs, ys, custom = _symmetric(scores)
            fig.add_trace(go.Scatter(
                x=xs, y=ys,
                mode="markers",
                marker=dict(color=color, size=size, symbol="square"),
                customdata=custom,
                hovertemplate="Residues %{customdata[0]}–%{customdata[1]}<extra>" + name + "</extra>",
                name=f"{name} ({len(scores)})",
            ))

        if state is not None:
            pairs = list(state.locked_residue_pairs.values())
            if pairs:
                xs = [p[0] for p in pairs] + [p[1] for p in pairs]
                ys = [p[1] for p in pairs] + [p[0] for p in pairs]
                custom = [list(p) for p in pairs] * 2
                fig.add_trace(go.Scatter(
                    x=xs, y=ys,
                    mode="markers",
                    marker=dict(
                        color="rgba(0,0,0,0)", size=marker_size * 2.2, symbol="square",
                        line=dict(color=LOCKED_COLOR, width=2),
                    ),
                    customdata=custom,
                    hovertemplate="Locked %{customdata[0]}–%{customdata[1]}<extra></extra>",
                    name=f"Locked ({len(pairs)})",
                ))

            for residue in state.highlighted_residues:
                fig.add_vline(x=residue, line=dict(color=HOVER_COLOR, width=2))
                fig.add_hline(y=residue, line=dict(color=HOVER_COLOR, width=2))

        L = max(analysis.chain_length, 1)
        layout_kwargs: dict = dict(
            title=dict(
                text=title or f"Contact Map — {analysis.dataset_name} "
                              f"(top {analysis.top_n}, {analysis.percent_correct:.0f}% correct)",
                x=0.5,
            ),
            xaxis=dict(title="Residue", range=[0, L + 1], constrain="domain"),
            yaxis=dict(title="Residue", range=[L + 1, 0], scaleanchor="x"),
            legend=dict(orientation="h", y=-0.15),
            clickmode="event",
            template="plotly_white",
        )
        if height is not None:
            layout_kwargs["height"] = height
        fig.update_layout(**layout_kwargs)

        return fig

    @staticmethod
    def precision_curve(
        sweep: TopNSweepAnalysis,
        title: str = "Precision vs. Top N",
    ) -> go.Figure:
        """Line plot of prediction precision vs. N.

        Parameters
        ----------
        sweep : TopNSweepAnalysis
        title : str

        Returns
        -------
        go.Figure
        """
        labels = [f"{f:g}L" for f in sweep.fractions]

        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=sweep.top_n_values,
            y=sweep.precisions,
            mode="lines+markers+text",
            text=labels,
            textposition="top center",
            name="Precision",
            line=dict(color="#1565C0", width=3),
            marker=dict(size=8),
        ))

        fig.update_layout(
            title=dict(text=title, x=0.5),
            xaxis_title="Top N predictions",
            yaxis_title="Correct (%)",
            yaxis=dict(range=[0, 105]),
            template="plotly_white",
        )

        return fig

    @staticmethod
    def range_breakdown_bar(
        analysis: PredictionAnalysis,
        title: str = "Predictions by Sequence Separation",
    ) -> go.Figure:
        """Bar chart of predicted contacts per range, with precision.

        Parameters
        ----------
        analysis : PredictionAnalysis
        title : str

        Returns
        -------
        go.Figure
        """
        counts = [analysis.range_counts.get(r, 0) for r in CONTACT_RANGES]
        precision = [analysis.range_precision.get(r, 0.0) for r in CONTACT_RANGES]

        fig = go.Figure(data=go.Bar(
            x=list(CONTACT_RANGES),
            y=counts,
            marker_color=[CONTACT_COLORS[r] for r in CONTACT_RANGES],
            text=[f"{p:.0f}%" for p in precision],
            textposition="outside",
            hovertemplate="%{x}: %{y} predicted<extra></extra>",
        ))

        fig.update_layout(
            title=dict(text=title, x=0.5),
            xaxis_title="Range",
            yaxis_title="Predicted contacts",
            template="plotly_white",
        )

        return fig

    @staticmethod
    def comparison_bars(
        comparison: DatasetComparisonResult,
        title: str = "Preset Data Set Comparison",
    ) -> go.Figure:
        """Precision and prediction counts across presets.

        Parameters
        ----------
        comparison : DatasetComparisonResult
        title : str

        Returns
        -------
        go.Figure
        """
        names = [r["Protein"] for r in comparison.summary_table]
        precision = [float(r["Precision %"]) for r in comparison.summary_table]
        predicted = [r["Predicted"] for r in comparison.summary_table]
        long_range = [r["Long-Range"] for r in comparison.summary_table]

        fig = make_subplots(rows=1, cols=3,
                            subplot_titles=["Precision %", "Predicted", "Long-Range"])

        fig.add_trace(go.Bar(x=names, y=precision, marker_color="#1565C0", name="Precision"), row=1, col=1)
        fig.add_trace(go.Bar(x=names, y=predicted, marker_color="#FF9800", name="Predicted"), row=1, col=2)
        fig.add_trace(go.Bar(x=names, y=long_range, marker_color="#F44336", name="Long-Range"), row=1, col=3)

        fig.update_layout(
            title=dict(text=title, x=0.5),
            showlegend=False,
            template="plotly_white",
        )

        return fig


# ═══════════════════════════════════════════════════════════════════════
# MatplotlibRenderer
# ═══════════════════════════════════════════════════════════════════════


class MatplotlibRenderer:
    """Static Matplotlib figures for publication output."""

    @staticmethod
    def contact_map(
        analysis: PredictionAnalysis,
        state: Optional[SelectionState] = None,
        title: Optional[str] = None,
    ) -> Figure:
        """Static symmetric contact map.

        Parameters
        ----------
        analysis : PredictionAnalysis
        state : SelectionState, optional
        title : str, optional

        Returns
        -------
        Figure
        """
        fig, ax = plt.subplots(1, 1, figsize=(8, 8))
        pred = analysis.prediction

        for label, scores, color, size in [
            ("Observed", analysis.classification.observed, OBSERVED_COLOR, 16),
            ("Incorrect", pred.incorrect, INCORRECT_COLOR, 10),
            ("Correct", pred.correct, CORRECT_COLOR, 10),
        ]:
            xs, ys, _ = _symmetric(scores)
            ax.scatter(xs, ys, s=size, c=color, marker="s", label=f"{label} ({len(scores)})")

        if state is not None and state.locked_residue_pairs:
            pairs = list(state.locked_residue_pairs.values())
            ax.scatter(
                [p[0] for p in pairs] + [p[1] for p in pairs],
                [p[1] for p in pairs] + [p[0] for p in pairs],
                s=60, facecolors="none", edgecolors=LOCKED_COLOR, marker="s",
                label=f"Locked ({len(pairs)})",
            )

        L = max(analysis.chain_length, 1)
        ax.set_xlim(0, L + 1)
        ax.set_ylim(L + 1, 0)
        ax.set_aspect("equal")
        ax.set_xlabel("Residue")
        ax.set_ylabel("Residue")
        ax.legend(loc="lower left", fontsize=8)
        ax.set_title(
            title or f"Contact Map — {analysis.dataset_name} "
                     f"({analysis.percent_correct:.0f}% of top {analysis.top_n} correct)",
            fontsize=14,
        )
        fig.tight_layout()

        return fig

    @staticmethod
    def precision_curve(
        sweep: TopNSweepAnalysis,
        title: str = "Precision vs. Top N",
    ) -> Figure:
        """Precision at each N of a sweep.

        Parameters
        ----------
        sweep : TopNSweepAnalysis
        title : str

        Returns
        -------
        Figure
        """
        fig, ax = plt.subplots(1, 1, figsize=(8, 5))

        ax.plot(sweep.top_n_values, sweep.precisions, "o-", color="#1565C0", linewidth=2)
        for n, p, f in zip(sweep.top_n_values, sweep.precisions, sweep.fractions):
            ax.annotate(f"{f:g}L", (n, p), textcoords="offset points",
                        xytext=(0, 6), ha="center", fontsize=8)

        ax.set_xlabel("Top N predictions")
        ax.set_ylabel("Correct (%)")
        ax.set_ylim(0, 105)
        ax.set_title(title, fontsize=14)
        fig.tight_layout()

        return fig

    @staticmethod
    def comparison(
        comparison: DatasetComparisonResult,
        title: str = "Preset Data Set Comparison",
    ) -> Figure:
        """Bar charts of precision and prediction counts per preset.

        Parameters
        ----------
        comparison : DatasetComparisonResult
        title : str

        Returns
        -------
        Figure
        """
        fig, axes = plt.subplots(1, 2, figsize=(14, 5))

        names = [r["Protein"] for r in comparison.summary_table]
        precision = [float(r["Precision %"]) for r in comparison.summary_table]
        predicted = [r["Predicted"] for r in comparison.summary_table]

        axes[0].bar(names, precision, color="#1565C0")
        axes[0].set_ylabel("Correct (%)")
        axes[0].set_title("Precision")
        axes[0].tick_params(axis="x", rotation=45)

        axes[1].bar(names, predicted, color="#FF9800")
        axes[1].set_ylabel("Predicted")
        axes[1].set_title("Predicted Contacts")
        axes[1].tick_params(axis="x", rotation=45)

        fig.suptitle(title, fontsize=14)
        fig.tight_layout()

        return fig
