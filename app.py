#!/usr/bin/env python3
"""
Streamlit web app for interactive CVD-safe color palette generation.
"""

import streamlit as st
import numpy as np
from cvd_palette_generator import (
    Mode, DICHROMACY_MODES, MIN_DELTA_E, hex_to_color, color_to_oklab,
    simulate_hex, distance_matrix, palette_statistics, palette_response,
)

MODE_LABELS = {
    Mode.NORMAL: "Normal vision",
    Mode.DEUTERANOPIA: "Deuteranopia",
    Mode.PROTANOPIA: "Protanopia",
    Mode.TRITANOPIA: "Tritanopia",
    Mode.BOTH: "Both",
}

st.set_page_config(page_title="CVD-Safe Palette Generator", layout="wide")

st.title("🎨 CVD-Safe Palette Generator")
st.write("Colors mathematically spaced to stay distinct, for everyone.")


def _swatch_html(hex_code, label=None, height=120):
    text_color = 'white' if color_to_oklab(hex_to_color(hex_code)).L < 0.6 else '#333333'
    caption = label if label is not None else hex_code.upper()
    return f"""
    <div style="
        background-color: {hex_code};
        border: 2px solid #333;
        border-radius: 8px;
        padding: 8px;
        text-align: center;
        color: {text_color};
        font-family: monospace;
        box-shadow: 0 2px 8px rgba(0,0,0,0.2);
        min-height: {height}px;
        display: flex;
        flex-direction: column;
        justify-content: flex-end;
    ">
        <div style="font-size: 12px; font-weight: bold;">{caption}</div>
    </div>
    """


def _distance_matrix_html(hex_colors, matrix):
    max_distance = np.max(matrix) if matrix.size else 0
    html_parts = ['''
<style>
.distance-matrix {
    border-collapse: collapse;
    margin: 20px auto;
    font-family: monospace;
}
.distance-matrix td, .distance-matrix th {
    border: 1px solid #ddd;
    text-align: center;
    min-width: 50px;
    height: 50px;
    padding: 4px;
}
.distance-matrix .color-cell {
    width: 40px;
    height: 40px;
    border: 2px solid #333;
    margin: 0 auto;
}
.distance-matrix .value-cell {
    font-size: 11px;
    font-weight: 600;
}
.distance-matrix .diagonal {
    background-color: #f0f0f0;
    color: #999;
}
.distance-matrix .below-floor {
    outline: 2px solid #c00;
}
</style>
<table class="distance-matrix">
<thead>
<tr>
<th></th>
''']
    for hex_code in hex_colors:
        html_parts.append(f'<th><div class="color-cell" style="background-color: {hex_code};"></div></th>')
    html_parts.append('</tr>\n</thead>\n<tbody>\n')
    for i, hex_i in enumerate(hex_colors):
        html_parts.append(f'<tr><th><div class="color-cell" style="background-color: {hex_i};"></div></th>')
        for j in range(len(hex_colors)):
            value = matrix[i, j]
            if i == j:
                html_parts.append('<td class="value-cell diagonal">&mdash;</td>')
                continue
            intensity = value / max_distance if max_distance > 0 else 0
            g = int(255 * (1 - intensity * 0.7))
            b = int(100 * (1 - intensity))
            extra = ' below-floor' if value < MIN_DELTA_E else ''
            html_parts.append(
                f'<td class="value-cell{extra}" style="background-color: rgb(255, {g}, {b});">{value:.2f}</td>'
            )
        html_parts.append('</tr>\n')
    html_parts.append('</tbody>\n</table>')
    return ''.join(html_parts)


with st.sidebar:
    st.subheader("Configuration")
    n_colors = st.selectbox("# of Colors", options=list(range(4, 16)), index=3)
    mode = st.selectbox(
        "Vision mode",
        options=list(Mode),
        format_func=lambda m: MODE_LABELS[m],
        help="'Both' keeps colors apart for normal vision and deuteranopia at once",
    )
    seed_text = st.text_input("Random seed (optional)", value="",
                              help="Use the same seed to reproduce a palette")
    generate = st.button("Generate Palette")

if generate:
    seed = None
    if seed_text.strip():
        try:
            seed = int(seed_text.strip())
        except ValueError:
            st.error("Seed must be an integer; generating without a seed.")
    with st.spinner("Sampling candidates and selecting colors..."):
        response = palette_response(n_colors, mode, rng=np.random.default_rng(seed))
    st.session_state['palette'] = response['palette']
    st.session_state['palette_mode'] = mode

palette = st.session_state.get('palette')
palette_mode = st.session_state.get('palette_mode', Mode.NORMAL)

if palette:
    st.subheader("Generated Palette")
    cols = st.columns(len(palette))
    for col, hex_code in zip(cols, palette):
        with col:
            st.markdown(_swatch_html(hex_code, height=160), unsafe_allow_html=True)

    st.subheader("Simulated Views")
    for variant in DICHROMACY_MODES:
        st.caption(MODE_LABELS[variant])
        cols = st.columns(len(palette))
        for col, hex_code in zip(cols, palette):
            with col:
                st.markdown(_swatch_html(simulate_hex(hex_code, variant), label="", height=48),
                            unsafe_allow_html=True)

    st.subheader("Color Details")
    color_data = []
    for hex_code in palette:
        lab = color_to_oklab(hex_to_color(hex_code))
        color_data.append({
            "Hex": hex_code.upper(),
            "L": f"{lab.L:.3f}",
            "a": f"{lab.a:+.3f}",
            "b": f"{lab.b:+.3f}",
            **{MODE_LABELS[v]: simulate_hex(hex_code, v).upper() for v in DICHROMACY_MODES},
        })
    st.dataframe(color_data, width="stretch")

    st.subheader(f"Oklab Distance Matrix ({MODE_LABELS[palette_mode]})")
    matrix = distance_matrix(palette, palette_mode)
    st.markdown(_distance_matrix_html(palette, matrix), unsafe_allow_html=True)

    st.subheader("Distance Statistics")
    stats = palette_statistics(palette, palette_mode)
    if stats['pairs']:
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            st.metric("Min Pairwise Distance", f"{stats['min']:.3f}")
        with col2:
            st.metric("Max Pairwise Distance", f"{stats['max']:.3f}")
        with col3:
            st.metric("Avg Pairwise Distance", f"{stats['mean']:.3f}")
        with col4:
            st.metric(f"Pairs below {MIN_DELTA_E:.2f}", stats['below_floor'])
else:
    st.info("Pick a size and a vision mode, then click Generate Palette.")
