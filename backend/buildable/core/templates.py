"""Built-in scaffold templates applied before file generation."""

import logging
from typing import Optional

from .ledger import FileStore

logger = logging.getLogger(__name__)


_VITE_INDEX_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{title}</title>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/main.tsx"></script>
  </body>
</html>
"""

_VITE_CONFIG = """import { defineConfig } from 'vite';
import react from '@vitejs/plugin-react';
import path from 'path';

export default defineConfig({
  plugins: [react()],
  resolve: {
    alias: {
      '@': path.resolve(__dirname, './src'),
    },
  },
});
"""

_MAIN_TSX = """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from './App';
import './index.css';

ReactDOM.createRoot(document.getElementById('root')!).render(
  <React.StrictMode>
    <App />
  </React.StrictMode>
);
"""

_INDEX_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;
"""

_TAILWIND_CONFIG = """/** @type {import('tailwindcss').Config} */
export default {
  content: ['./index.html', './src/**/*.{ts,tsx}'],
  theme: {
    extend: {},
  },
  plugins: [],
};
"""

_PACKAGE_JSON = """{
  "name": "buildable-app",
  "private": true,
  "version": "0.0.0",
  "type": "module",
  "scripts": {
    "dev": "vite",
    "build": "tsc && vite build",
    "preview": "vite preview"
  },
  "dependencies": {
    "react": "^18.3.1",
    "react-dom": "^18.3.1"
  },
  "devDependencies": {
    "@types/react": "^18.3.3",
    "@types/react-dom": "^18.3.0",
    "@vitejs/plugin-react": "^4.3.1",
    "autoprefixer": "^10.4.19",
    "postcss": "^8.4.38",
    "tailwindcss": "^3.4.4",
    "typescript": "^5.4.5",
    "vite": "^5.3.1"
  }
}
"""

_TSCONFIG = """{
  "compilerOptions": {
    "target": "ES2020",
    "lib": ["ES2020", "DOM", "DOM.Iterable"],
    "module": "ESNext",
    "moduleResolution": "bundler",
    "jsx": "react-jsx",
    "strict": true,
    "skipLibCheck": true,
    "noEmit": true,
    "baseUrl": ".",
    "paths": {
      "@/*": ["./src/*"]
    }
  },
  "include": ["src"]
}
"""

TEMPLATES: dict[str, dict[str, str]] = {
    "react-vite": {
        "index.html": _VITE_INDEX_HTML.format(title="Buildable App"),
        "package.json": _PACKAGE_JSON,
        "tsconfig.json": _TSCONFIG,
        "vite.config.ts": _VITE_CONFIG,
        "tailwind.config.js": _TAILWIND_CONFIG,
        "src/main.tsx": _MAIN_TSX,
        "src/index.css": _INDEX_CSS,
    },
    "landing-page": {
        "index.html": _VITE_INDEX_HTML.format(title="Landing Page"),
        "package.json": _PACKAGE_JSON,
        "tsconfig.json": _TSCONFIG,
        "vite.config.ts": _VITE_CONFIG,
        "tailwind.config.js": _TAILWIND_CONFIG,
        "src/main.tsx": _MAIN_TSX,
        "src/index.css": _INDEX_CSS,
        "src/components/Section.tsx": (
            "import { ReactNode } from 'react';\n\n"
            "interface SectionProps {\n"
            "  id?: string;\n"
            "  children: ReactNode;\n"
            "}\n\n"
            "export default function Section({ id, children }: SectionProps) {\n"
            "  return (\n"
            '    <section id={id} className="mx-auto max-w-6xl px-6 py-16">\n'
            "      {children}\n"
            "    </section>\n"
            "  );\n"
            "}\n"
        ),
    },
}


def get_template(name: str) -> Optional[dict[str, str]]:
    return TEMPLATES.get(name)


async def apply_template(
    name: str,
    workspace_id: str,
    file_store: FileStore,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
) -> list[str]:
    """
    Write a named template's files into a workspace.

    Returns the written paths; an unknown template writes nothing.
    """
    files = get_template(name)
    if files is None:
        logger.warning(f"Unknown template '{name}', skipping scaffold")
        return []

    for path, content in files.items():
        await file_store.upsert_file(
            workspace_id,
            path,
            content,
            user_id=user_id,
            session_id=session_id,
            reasoning=f"Scaffolded from template {name}",
        )

    logger.info(f"Applied template {name}: {len(files)} files")
    return list(files)
