"""
WebCompass Proxy - Headless Browser Orchestration

Drives one shared Playwright Chromium process: navigate pages, capture
screenshots, extract DOM content and run scripts inside the page.

The browser is lazy-initialized (only started on first use) and runs
headless. Every operation gets its own short-lived page that is closed
when the operation ends, however it ends.
"""
