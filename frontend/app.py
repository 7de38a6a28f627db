"""
Streamlit Paper Trading Dashboard - Main Application

Price chart, order entry, active orders, terminal event feed and advisor
panel on top of the paper-trading backend.
"""

import streamlit as st
import time
import sys
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from frontend/.env
frontend_dir = Path(__file__).parent
env_path = frontend_dir / ".env"
if env_path.exists():
    load_dotenv(env_path)

# Add frontend directory to path for imports
if str(frontend_dir) not in sys.path:
    sys.path.insert(0, str(frontend_dir))

# Page config must be first
st.set_page_config(
    page_title="Paper Trading Dashboard",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded"
)

from services.api_client import APIError, get_api_client
from utils.formatters import (
    color_by_side,
    color_by_status,
    format_event_line,
    format_order_id,
    format_price,
    format_quantity,
    format_timestamp,
    to_decimal_string,
)

# Get backend URL from environment variable or use default
BACKEND_HOST = os.getenv("BACKEND_HOST", "localhost")
BACKEND_PORT = os.getenv("BACKEND_PORT", "8000")
BACKEND_PROTOCOL = os.getenv("BACKEND_PROTOCOL", "http")
BACKEND_URL = f"{BACKEND_PROTOCOL}://{BACKEND_HOST}:{BACKEND_PORT}"

ORDER_TYPES = {"Market": "MARKET", "Limit": "LIMIT", "Stop Limit": "STOP_LIMIT"}

# Initialize session state
if "backend_url" not in st.session_state:
    st.session_state.backend_url = BACKEND_URL
if "connected" not in st.session_state:
    st.session_state.connected = False
if "current_page" not in st.session_state:
    st.session_state.current_page = "Trading"
if "analysis" not in st.session_state:
    st.session_state.analysis = None
if "generated_code" not in st.session_state:
    st.session_state.generated_code = None

api_client = get_api_client(st.session_state.backend_url)


def render_chart():
    """Price chart of the market window."""
    try:
        window = api_client.get_market_window()
    except APIError as e:
        st.error(f"Failed to load market window: {e}")
        return None

    ticks = window.get("ticks", [])
    last_price = window.get("last_price")

    col1, col2, col3 = st.columns(3)
    col1.metric(window.get("symbol", "N/A"), format_price(last_price))
    col2.metric("Ticks in Window", f"{len(ticks)}/{window.get('window_size', 0)}")
    col3.metric("Ticks Received", window.get("total_ticks", 0))

    if ticks:
        st.line_chart({"Price": [float(tick["price"]) for tick in ticks]}, height=280)
    else:
        st.info("Waiting for price data...")

    return last_price


def render_order_form(last_price):
    """Order entry form."""
    st.subheader("Submit Order")

    col1, col2, col3 = st.columns(3)
    with col1:
        order_type_label = st.selectbox("Order Type", list(ORDER_TYPES.keys()))
        order_type = ORDER_TYPES[order_type_label]
    with col2:
        side = st.radio("Side", ["BUY", "SELL"], horizontal=True)
    with col3:
        quantity = st.number_input("Quantity", min_value=0.0001, value=0.01, step=0.001, format="%.4f")

    default_price = float(last_price) if last_price else 100.0
    limit_price = None
    stop_price = None

    col4, col5 = st.columns(2)
    with col4:
        if order_type != "MARKET":
            limit_price = st.number_input("Limit Price", min_value=0.01, value=default_price, step=1.0, format="%.2f")
        else:
            st.write("Fills at the next tick price")
    with col5:
        if order_type == "STOP_LIMIT":
            use_stop = st.checkbox("Stop trigger", value=True)
            if use_stop:
                stop_price = st.number_input("Stop Price", min_value=0.01, value=default_price, step=1.0, format="%.2f")

    label = f"🟢 {side}" if side == "BUY" else f"🔴 {side}"
    if st.button(label, type="primary"):
        try:
            with st.spinner("Sending order..."):
                result = api_client.submit_order(
                    side=side,
                    order_type=order_type,
                    quantity=to_decimal_string(quantity),
                    limit_price=to_decimal_string(limit_price) if limit_price is not None else None,
                    stop_price=to_decimal_string(stop_price) if stop_price is not None else None,
                )
            st.success(f"✅ Order accepted! ID: {format_order_id(result['order_id'])}")
        except APIError as e:
            st.error(f"❌ {e}")

    return side, order_type, quantity, limit_price, stop_price


def render_active_orders():
    """Open orders with cancel buttons."""
    st.subheader("Active Orders")

    try:
        orders = api_client.list_orders(status="open").get("orders", [])
    except APIError as e:
        st.error(f"Failed to load orders: {e}")
        return

    if not orders:
        st.info("No active orders")
        return

    headers = ["Order ID", "Side", "Type", "Quantity", "Limit", "Stop", "Status", "Action"]
    for col, header in zip(st.columns([2, 1, 1, 1, 1, 1, 1, 1]), headers):
        col.markdown(f"**{header}**")

    for order in orders:
        cols = st.columns([2, 1, 1, 1, 1, 1, 1, 1])
        cols[0].text(format_order_id(order.get("order_id")))
        side = order.get("side", "")
        cols[1].markdown(f"<span style='color:{color_by_side(side)}'>{side}</span>", unsafe_allow_html=True)
        cols[2].text(order.get("order_type", ""))
        cols[3].text(format_quantity(order.get("quantity")))
        cols[4].text(format_price(order.get("limit_price")) if order.get("limit_price") else "Market")
        cols[5].text(format_price(order.get("stop_price")) if order.get("stop_price") else "-")
        status = order.get("status", "")
        cols[6].markdown(f"<span style='color:{color_by_status(status)}'>{status}</span>", unsafe_allow_html=True)
        if cols[7].button("Cancel", key=f"cancel_{order.get('order_id')}"):
            try:
                api_client.cancel_order(order["order_id"])
                st.success("✅ Order cancelled")
                st.rerun()
            except APIError as e:
                st.error(f"❌ {e}")


def render_terminal(limit: int = 50):
    """Terminal-style event panel."""
    st.subheader("Terminal")

    try:
        events = api_client.get_events(limit=limit).get("events", [])
    except APIError as e:
        st.error(f"Failed to load events: {e}")
        return

    lines = "<br>".join(format_event_line(event) for event in reversed(events))
    st.markdown(
        "<div style='background:#0b0f14;font-family:monospace;font-size:0.8rem;"
        "padding:0.75rem;border-radius:6px;height:320px;overflow-y:auto'>"
        f"{lines or 'No events yet'}</div>",
        unsafe_allow_html=True
    )


def render_advisor(order_spec):
    """Advisor panel: trend commentary and order-script generation."""
    st.subheader("AI Advisor")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("🧠 Analyze Trend", use_container_width=True):
            try:
                with st.spinner("Requesting market analysis..."):
                    st.session_state.analysis = api_client.analyze_market()
            except APIError as e:
                st.error(f"❌ {e}")
    with col2:
        if st.button("🐍 Generate Python Code", use_container_width=True):
            side, order_type, quantity, limit_price, stop_price = order_spec
            try:
                with st.spinner("Generating code..."):
                    st.session_state.generated_code = api_client.generate_code(
                        side=side,
                        order_type=order_type,
                        quantity=to_decimal_string(quantity),
                        limit_price=to_decimal_string(limit_price) if limit_price is not None else None,
                        stop_price=to_decimal_string(stop_price) if stop_price is not None else None,
                    )
            except APIError as e:
                st.error(f"❌ {e}")

    analysis = st.session_state.analysis
    if analysis:
        st.caption(f"Based on {analysis.get('sample_size', 0)} prices at {format_timestamp(analysis.get('timestamp'))}")
        st.info(analysis.get("analysis", ""))

    generated = st.session_state.generated_code
    if generated:
        st.code(generated.get("code", ""), language="python")


# Sidebar
with st.sidebar:
    st.title("📈 Paper Trading")

    if api_client.health_check():
        st.success("🟢 Connected")
        st.session_state.connected = True
    else:
        st.error("🔴 Disconnected")
        st.session_state.connected = False

    st.divider()

    pages = ["Trading", "Metrics"]
    default_index = pages.index(st.session_state.current_page) if st.session_state.current_page in pages else 0
    page = st.radio("Navigation", pages, index=default_index, key="nav_radio")
    st.session_state.current_page = page

    st.divider()

    with st.expander("⚙️ Settings"):
        st.session_state.backend_url = st.text_input("Backend URL", st.session_state.backend_url)
        auto_refresh = st.checkbox("Auto Refresh", value=True)
        refresh_interval = st.slider("Refresh Interval (s)", 1, 10, 2)

    with st.expander("🧪 Manual Tick"):
        manual_price = st.number_input("Price", min_value=0.01, value=100.0, step=1.0, format="%.2f")
        if st.button("Send Tick"):
            try:
                api_client.post_tick(to_decimal_string(manual_price))
                st.success("Tick queued")
            except APIError as e:
                st.error(f"❌ {e}")

# Main content based on page selection
if page == "Trading":
    st.title("💱 Paper Trading Dashboard")

    chart_col, side_col = st.columns([3, 2])
    with chart_col:
        last_price = render_chart()
        render_active_orders()
    with side_col:
        order_spec = render_order_form(last_price)
        st.divider()
        render_advisor(order_spec)

    st.divider()
    render_terminal()

elif page == "Metrics":
    st.title("📈 Engine Metrics")

    stats = api_client.get_statistics()
    if not stats:
        st.error("Failed to load metrics")
    else:
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Ticks Processed", stats.get("ticks_processed", 0))
        col2.metric("Orders Filled", stats.get("orders_filled", 0))
        col3.metric("Open Orders", stats.get("open_orders", 0))
        col4.metric("Fill Volume", format_quantity(stats.get("fill_volume", 0)))

        st.divider()

        col1, col2 = st.columns(2)
        with col1:
            st.subheader("Orders")
            st.write(f"Total Orders: {stats.get('total_orders', 0)}")
            st.write(f"Stops Triggered: {stats.get('stops_triggered', 0)}")
            st.write(f"Pending Acceptances: {stats.get('pending_acceptances', 0)}")
        with col2:
            st.subheader("System Health")
            st.write("✅ Price Feed: Connected" if stats.get("feed_connected") else "⚠️ Price Feed: Disconnected")
            st.write("❌ Matching: Halted" if stats.get("matching_halted") else "✅ Matching Engine: Active")
            st.write(f"Queued Ticks: {stats.get('queued_ticks', 0)}")
            if "avg_latency_ms" in stats:
                st.write(f"Avg Tick Latency: {stats['avg_latency_ms']:.3f} ms")

# Auto-refresh
if st.session_state.get('connected') and auto_refresh:
    time.sleep(refresh_interval)
    st.rerun()
