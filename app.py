import logging
import random
import re

import streamlit as st
import streamlit.components.v1 as components

import wfc_core

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s %(name)s %(levelname)s %(message)s')

st.set_page_config(page_title="Tile Scene Preview", layout="wide")
st.title("Tile Scene Preview")

with st.sidebar:
    st.header("Grid Settings")
    dim_x = st.slider("Grid X", 2, 24, 8)
    dim_y = st.slider("Grid Y", 1, 8, 2)
    dim_z = st.slider("Grid Z", 2, 24, 8)

    st.header("Tiles")
    tile_names = st.multiselect(
        "Tile Set",
        sorted(wfc_core.TILE_LIBRARY),
        default=['floor', 'floor_corner', 'floor_wall', 'empty'],
    )
    rotation_names = st.multiselect(
        "Orientations",
        list(wfc_core.ROTATION_NAMES),
        default=['identity', 'r90y', 'r180y', 'r270y'],
        help="Every orientation is materialized as its own prototype before solving."
    )

    st.header("Generation")
    limit_steps = st.checkbox("Limit steps", value=False)
    if limit_steps:
        max_steps = st.slider("Max Steps", 1, dim_x * dim_y * dim_z, dim_x * dim_y * dim_z // 2)
    else:
        max_steps = None
    rng_seed = st.number_input("Random Seed", 0, 2 ** 31 - 1, 0, 1,
                               help="0 = new seed on every run")

    st.header("View Settings")
    plane = st.selectbox("Projection", ['xz', 'xy', 'zy'], index=0,
                         help="xz = top-down, xy = front, zy = side")
    stroke_width = st.slider("Stroke Width", 0.2, 2.0, 0.5, 0.1)
    zoom_level = st.slider("Zoom", 25, 200, 100, 5, help="Zoom level (100% = fit to window)")

    if st.button("Regenerate", type="primary"):
        st.session_state.pop('result', None)
        st.session_state.pop('result_key', None)

if not tile_names:
    st.warning("Pick at least one tile.")
    st.stop()

mask = wfc_core.create_rotation_cases(rotation_names or ['identity'])
current_key = (dim_x, dim_y, dim_z, tuple(tile_names), mask, max_steps, rng_seed)

if 'result' not in st.session_state or st.session_state.get('result_key') != current_key:
    seed = rng_seed if rng_seed else random.randrange(1, 2 ** 31)
    rng = random.Random(seed)
    scene = wfc_core.WfcScene(dim_x, dim_y, dim_z, rng=rng)
    for prototype in wfc_core.build_tile_set(tile_names, mask):
        scene.insert_block_case(prototype)

    wfc_progress = st.progress(0, text="Generating scene...")

    def wfc_update(steps, total):
        wfc_progress.progress(min(steps / total, 1.0),
                              text="{}/{} cells".format(steps, total))

    seed_coord = (dim_x // 2, 0, dim_z // 2)
    result = wfc_core.run_generation(scene, 0, seed_coord, max_steps=max_steps,
                                     progress_callback=wfc_update)
    wfc_progress.empty()
    result['seed'] = seed
    result['prototype_count'] = len(scene.prototypes)
    result['total_cells'] = len(scene)
    st.session_state.result = result
    st.session_state.result_key = current_key

result = st.session_state.result

col1, col2, col3, col4 = st.columns(4)
col1.metric("Prototypes", result['prototype_count'])
col2.metric("Resolved", "{} / {}".format(len(result['known']), result['total_cells']))
col3.metric("Stuck Cells", len(result['stuck']))
col4.metric("Seed", result['seed'])

if result['stuck']:
    st.warning("{} cell(s) ran out of candidates and were left unresolved.".format(
        len(result['stuck'])))

progress_bar = st.progress(0, text="Rendering boxes...")

def update_progress(current, total):
    progress_bar.progress(current / total, text="Rendering box {} / {}".format(current, total))

svg_string = wfc_core.render_aabbs_svg(
    result['aabbs'],
    params={'plane': plane, 'stroke_width': stroke_width},
    progress_callback=update_progress,
)
progress_bar.empty()

display_svg = re.sub(r'width="[\d.]+"', 'width="100%"', svg_string, count=1)
display_svg = re.sub(r'height="[\d.]+"', 'height="100%"', display_svg, count=1)
svg_size = zoom_level

html_content = f'''
<div style="background:#f0f0f0; height:100%; display:flex; align-items:center;
            justify-content:center; overflow:auto; padding:20px; box-sizing:border-box;">
    <div style="background:white; padding:10px; box-shadow: 0 2px 8px rgba(0,0,0,0.1);">
        <div style="width:{svg_size}vmin; height:{svg_size}vmin;">
            {display_svg}
        </div>
    </div>
</div>
'''
components.html(html_content, height=700, scrolling=True)

st.download_button(
    "Download SVG",
    svg_string,
    file_name="tile-scene.svg",
    mime="image/svg+xml"
)
