from typing import Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go


def generate_plotly_colors(num_colors):
    """
    Generates a list of distinct Plotly-compatible colors.

    Parameters:
        num_colors (int): Number of colors needed.

    Returns:
        list: A list of color hex codes or names suitable for Plotly.
    """
    base_colors = px.colors.qualitative.Plotly
    return (
        base_colors[:num_colors]
        if num_colors <= len(base_colors)
        else [base_colors[i % len(base_colors)] for i in range(num_colors)]
    )


def plot_isc_series(series: pd.DataFrame, name: Optional[str] = None) -> go.Figure:
    """
    Line plot of the aggregated ISC, one trace per band.

    Parameters:
        series (pd.DataFrame): ``timestamp`` plus one column per band.
        name (str, optional): Stimulus/study name for the title.

    Returns:
        go.Figure: The figure; missing windows show as gaps.
    """
    bands = [c for c in series.columns if c != "timestamp"]
    colors = generate_plotly_colors(len(bands))
    fig = go.Figure()

    for idx, band in enumerate(bands):
        fig.add_trace(
            go.Scatter(
                x=series["timestamp"],
                y=series[band],
                mode="lines+markers",
                name=band,
                line=dict(color=colors[idx]),
                connectgaps=False,
                hovertemplate="t: %{x:.2f}<br>ISC: %{y:.3f}<extra>%{fullData.name}</extra>",
            )
        )

    fig.update_layout(
        title=f"{name} Intersubject Correlation" if name else "Intersubject Correlation",
        xaxis=dict(title="Time"),
        yaxis=dict(title="Mean |r|", range=[0, 1]),
        height=400,
        template="plotly_white",
        legend_title_text="Band",
        margin=dict(l=60, r=30, t=60, b=40),
    )
    return fig


def plot_quality_scores(quality: pd.DataFrame, threshold: Optional[float] = None) -> go.Figure:
    """
    Bar chart of the missing-data percentage per respondent.

    Excluded respondents (``included`` column, when present) are drawn in red,
    and ``threshold`` is marked with a dashed line.
    """
    included = quality["included"] if "included" in quality.columns else pd.Series(True, index=quality.index)
    fig = go.Figure(
        go.Bar(
            x=quality["respondent_id"].astype(str),
            y=quality["quality_score"],
            marker_color=["#636EFA" if ok else "#EF553B" for ok in included],
            hovertemplate="%{x}<br>missing: %{y:.1f}%<extra></extra>",
        )
    )
    if threshold is not None:
        fig.add_hline(y=threshold, line_dash="dash", annotation_text=f"threshold {threshold:g}%")

    fig.update_layout(
        title="Missing PSD samples per respondent",
        xaxis=dict(title="Respondent"),
        yaxis=dict(title="Missing (%)", range=[0, 100]),
        height=400,
        template="plotly_white",
        margin=dict(l=60, r=30, t=60, b=40),
    )
    return fig
