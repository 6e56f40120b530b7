"""Deterministic, template-driven project generator for backend and full-stack scopes."""

from __future__ import annotations

import json

from codeforge.models import GeneratedFile, ScopeDecision, ScopeType
from codeforge.scope import extract_entities

ENV_TS = """export interface AppConfig {
  port: number;
  nodeEnv: string;
  corsOrigin: string;
}

export const config: AppConfig = {
  port: Number(process.env.PORT ?? 4000),
  nodeEnv: process.env.NODE_ENV ?? 'development',
  corsOrigin: process.env.CORS_ORIGIN ?? '*',
};

export default config;
"""

HTTP_ERROR_TS = """export class HttpError extends Error {
  public readonly status: number;

  constructor(status: number, message: string) {
    super(message);
    this.status = status;
    this.name = 'HttpError';
  }
}

export const notFound = (resource: string, id: string): HttpError =>
  new HttpError(404, resource + ' ' + id + ' not found');

export default HttpError;
"""

ASYNC_HANDLER_TS = """import type { NextFunction, Request, RequestHandler, Response } from 'express';

export const asyncHandler =
  (handler: (req: Request, res: Response, next: NextFunction) => Promise<void>): RequestHandler =>
  (req, res, next) => {
    handler(req, res, next).catch(next);
  };

export default asyncHandler;
"""

ERROR_HANDLER_TS = """import type { NextFunction, Request, Response } from 'express';
import { HttpError } from '../utils/HttpError';

export const errorHandler = (err: Error, _req: Request, res: Response, _next: NextFunction): void => {
  const status = err instanceof HttpError ? err.status : 500;
  res.status(status).json({ error: err.message });
};

export default errorHandler;
"""

VALIDATE_TS = """import type { NextFunction, Request, Response } from 'express';
import { HttpError } from '../utils/HttpError';

export const requireFields =
  (fields: string[]) =>
  (req: Request, _res: Response, next: NextFunction): void => {
    const missing = fields.filter((field) => req.body?.[field] === undefined);
    if (missing.length > 0) {
      next(new HttpError(400, 'Missing fields: ' + missing.join(', ')));
      return;
    }
    next();
  };

export default requireFields;
"""

APP_TS = """import cors from 'cors';
import express from 'express';
import { config } from './config/env';
import { errorHandler } from './middleware/errorHandler';
{{ROUTE_IMPORTS}}

export const createApp = () => {
  const app = express();
  app.use(cors({ origin: config.corsOrigin }));
  app.use(express.json());
  app.get('/health', (_req, res) => {
    res.json({ status: 'ok' });
  });
{{ROUTE_MOUNTS}}
  app.use(errorHandler);
  return app;
};

export default createApp;
"""

SERVER_TS = """import { createApp } from './app';
import { config } from './config/env';

const app = createApp();

app.listen(config.port, () => {
  process.stdout.write('API listening on port ' + config.port + '\\n');
});
"""

MODEL_TS = """export interface {{Name}} {
  id: string;
  name: string;
  createdAt: Date | string;
}

export type {{Name}}Input = Omit<{{Name}}, 'id' | 'createdAt'>;
"""

MEMORY_SERVICE_TS = """import { randomUUID } from 'crypto';
import type { {{Name}}, {{Name}}Input } from '../models/{{name}}.model';
import { notFound } from '../utils/HttpError';

const {{names}}: {{Name}}[] = [];

export const {{name}}Service = {
  async list(): Promise<{{Name}}[]> {
    return [...{{names}}];
  },
  async get(id: string): Promise<{{Name}}> {
    const found = {{names}}.find((item) => item.id === id);
    if (!found) {
      throw notFound('{{Name}}', id);
    }
    return found;
  },
  async create(input: {{Name}}Input): Promise<{{Name}}> {
    const record: {{Name}} = { ...input, id: randomUUID(), createdAt: new Date().toISOString() };
    {{names}}.push(record);
    return record;
  },
  async update(id: string, input: Partial<{{Name}}Input>): Promise<{{Name}}> {
    const current = await this.get(id);
    Object.assign(current, input);
    return current;
  },
  async remove(id: string): Promise<void> {
    const index = {{names}}.findIndex((item) => item.id === id);
    if (index === -1) {
      throw notFound('{{Name}}', id);
    }
    {{names}}.splice(index, 1);
  },
};

export default {{name}}Service;
"""

PRISMA_SERVICE_TS = """import { prisma } from '../db/client';
import type { {{Name}}, {{Name}}Input } from '../models/{{name}}.model';
import { notFound } from '../utils/HttpError';

export const {{name}}Service = {
  async list(): Promise<{{Name}}[]> {
    return prisma.{{name}}.findMany();
  },
  async get(id: string): Promise<{{Name}}> {
    const found = await prisma.{{name}}.findUnique({ where: { id } });
    if (!found) {
      throw notFound('{{Name}}', id);
    }
    return found;
  },
  async create(input: {{Name}}Input): Promise<{{Name}}> {
    return prisma.{{name}}.create({ data: input });
  },
  async update(id: string, input: Partial<{{Name}}Input>): Promise<{{Name}}> {
    await this.get(id);
    return prisma.{{name}}.update({ where: { id }, data: input });
  },
  async remove(id: string): Promise<void> {
    await this.get(id);
    await prisma.{{name}}.delete({ where: { id } });
  },
};

export default {{name}}Service;
"""

CONTROLLER_TS = """import type { Request, Response } from 'express';
import { {{name}}Service } from '../services/{{name}}.service';

export const {{name}}Controller = {
  async list(_req: Request, res: Response): Promise<void> {
    res.json(await {{name}}Service.list());
  },
  async get(req: Request, res: Response): Promise<void> {
    res.json(await {{name}}Service.get(req.params.id));
  },
  async create(req: Request, res: Response): Promise<void> {
    res.status(201).json(await {{name}}Service.create(req.body));
  },
  async update(req: Request, res: Response): Promise<void> {
    res.json(await {{name}}Service.update(req.params.id, req.body));
  },
  async remove(req: Request, res: Response): Promise<void> {
    await {{name}}Service.remove(req.params.id);
    res.status(204).end();
  },
};

export default {{name}}Controller;
"""

ROUTES_TS = """import { Router } from 'express';
import { {{name}}Controller } from '../controllers/{{name}}.controller';
import { requireFields } from '../middleware/validate';
import { asyncHandler } from '../utils/asyncHandler';

const router = Router();

router.get('/', asyncHandler({{name}}Controller.list));
router.get('/:id', asyncHandler({{name}}Controller.get));
router.post('/', requireFields(['name']), asyncHandler({{name}}Controller.create));
router.put('/:id', asyncHandler({{name}}Controller.update));
router.delete('/:id', asyncHandler({{name}}Controller.remove));

export default router;
"""

DB_CLIENT_TS = """import { PrismaClient } from '@prisma/client';

export const prisma = new PrismaClient();

export default prisma;
"""

PRISMA_HEADER = """generator client {
  provider = "prisma-client-js"
}

datasource db {
  provider = "postgresql"
  url      = env("DATABASE_URL")
}
"""

PRISMA_MODEL = """
model {{Name}} {
  id        String   @id @default(uuid())
  name      String
  createdAt DateTime @default(now())
}
"""

API_CLIENT_TS = """const API_URL = import.meta.env.VITE_API_URL ?? 'http://localhost:4000/api';

export async function request<T>(path: string, init?: RequestInit): Promise<T> {
  const response = await fetch(API_URL + path, {
    headers: { 'Content-Type': 'application/json' },
    ...init,
  });
  if (!response.ok) {
    throw new Error('Request failed with status ' + response.status);
  }
  return (await response.json()) as T;
}

export default request;
"""

TYPES_TS = """export interface {{Name}} {
  id: string;
  name: string;
  createdAt: string;
}

export type {{Name}}Input = Omit<{{Name}}, 'id' | 'createdAt'>;
"""

HOOK_TS = """import { useCallback, useEffect, useState } from 'react';
import { request } from '../api/client';
import type { {{Name}}, {{Name}}Input } from '../types/{{name}}.types';

export function use{{Names}}() {
  const [items, setItems] = useState([] as {{Name}}[]);
  const [loading, setLoading] = useState(true);
  const [error, setError] = useState('');

  const refresh = useCallback(async () => {
    setLoading(true);
    try {
      setItems(await request<{{Name}}[]>('/{{names}}'));
      setError('');
    } catch (err) {
      setError(err instanceof Error ? err.message : 'Unknown error');
    } finally {
      setLoading(false);
    }
  }, []);

  const create = useCallback(
    async (input: {{Name}}Input) => {
      await request<{{Name}}>('/{{names}}', { method: 'POST', body: JSON.stringify(input) });
      await refresh();
    },
    [refresh],
  );

  useEffect(() => {
    refresh();
  }, [refresh]);

  return { items, loading, error, refresh, create };
}

export default use{{Names}};
"""

PAGE_TSX = """import { useState, type FormEvent } from 'react';
import { DataTable } from '../components/DataTable';
import { use{{Names}} } from '../hooks/use{{Names}}';

export const {{Names}}Page = () => {
  const { items, loading, error, create } = use{{Names}}();
  const [name, setName] = useState('');

  const handleSubmit = async (event: FormEvent) => {
    event.preventDefault();
    if (!name.trim()) {
      return;
    }
    await create({ name });
    setName('');
  };

  return (
    <section className="space-y-4">
      <h1 className="text-2xl font-semibold">{{Names}}</h1>
      <form onSubmit={handleSubmit} className="flex gap-2">
        <input
          value={name}
          onChange={(event) => setName(event.target.value)}
          className="rounded border px-3 py-2"
          placeholder="New {{name}} name"
        />
        <button type="submit" className="rounded bg-indigo-600 px-4 py-2 text-white">
          Add
        </button>
      </form>
      {error && <p className="text-red-600">{error}</p>}
      {loading ? (
        <p>Loading...</p>
      ) : (
        <DataTable rows={items.map((item) => ({ ...item }))} columns={['id', 'name', 'createdAt']} />
      )}
    </section>
  );
};

export default {{Names}}Page;
"""

DATA_TABLE_TSX = """export interface DataTableProps {
  rows: Array<Record<string, unknown>>;
  columns: string[];
}

export const DataTable = ({ rows, columns }: DataTableProps) => (
  <table className="min-w-full divide-y divide-gray-200">
    <thead>
      <tr>
        {columns.map((column) => (
          <th key={column} className="px-4 py-2 text-left text-sm font-medium">
            {column}
          </th>
        ))}
      </tr>
    </thead>
    <tbody>
      {rows.map((row, index) => (
        <tr key={String(row.id ?? index)}>
          {columns.map((column) => (
            <td key={column} className="px-4 py-2 text-sm">
              {String(row[column] ?? '')}
            </td>
          ))}
        </tr>
      ))}
    </tbody>
  </table>
);

export default DataTable;
"""

LAYOUT_TSX = """import type { ReactNode } from 'react';

export interface LayoutProps {
  title: string;
  children: ReactNode;
}

export const Layout = ({ title, children }: LayoutProps) => (
  <div className="min-h-screen bg-gray-50">
    <header className="bg-white shadow">
      <div className="mx-auto max-w-5xl px-4 py-4 text-xl font-bold">{title}</div>
    </header>
    <main className="mx-auto max-w-5xl px-4 py-8">{children}</main>
  </div>
);

export default Layout;
"""

APP_TSX = """import { useState } from 'react';
import { Layout } from './components/Layout';
{{PAGE_IMPORTS}}

const PAGES = {
{{PAGE_ENTRIES}}
};

export type PageKey = keyof typeof PAGES;

export const App = () => {
  const [page, setPage] = useState('{{FIRST_PAGE}}' as PageKey);
  const Current = PAGES[page];

  return (
    <Layout title="{{TITLE}}">
      <nav className="mb-6 flex gap-3">
        {(Object.keys(PAGES) as PageKey[]).map((key) => (
          <button
            key={key}
            type="button"
            onClick={() => setPage(key)}
            className={key === page ? 'font-semibold text-indigo-600' : 'text-gray-600'}
          >
            {key}
          </button>
        ))}
      </nav>
      <Current />
    </Layout>
  );
};

export default App;
"""

MAIN_TSX = """import { StrictMode } from 'react';
import { createRoot } from 'react-dom/client';
import App from './App';
import './index.css';

const container = document.getElementById('root');

if (container) {
  createRoot(container).render(
    <StrictMode>
      <App />
    </StrictMode>,
  );
}
"""

INDEX_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;
"""

INDEX_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{{TITLE}}</title>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/main.tsx"></script>
  </body>
</html>
"""

TSCONFIG = {
    "compilerOptions": {
        "target": "ES2020",
        "module": "commonjs",
        "strict": True,
        "esModuleInterop": True,
        "outDir": "dist",
        "rootDir": "src",
    },
    "include": ["src"],
}


def render_template(template: str, replacements: dict[str, str]) -> str:
    """Replace ``{{TOKEN}}`` placeholders in a template string."""
    rendered = template
    for token, value in replacements.items():
        rendered = rendered.replace(f"{{{{{token}}}}}", value)
    return rendered


def pluralize(word: str) -> str:
    if word.endswith("y") and word[-2:-1] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "ch", "sh")):
        return word + "es"
    return word + "s"


def _names(resource: str) -> dict[str, str]:
    lower = resource[:1].lower() + resource[1:]
    return {
        "Name": resource,
        "name": lower,
        "Names": pluralize(resource),
        "names": pluralize(lower),
    }


class TemplateProjectGenerator:
    """Emits a fixed Express (and optionally React) layout for the detected resources."""

    name = "express-template"

    def generate(self, prompt: str, scope: ScopeDecision) -> list[GeneratedFile]:
        if scope.type not in (ScopeType.BACKEND, ScopeType.FULLSTACK):
            raise ValueError(f"Template generator does not support scope {scope.type.value}")

        resources = extract_entities(prompt)
        if not resources:
            resources = [scope.entity if scope.entity != "Component" else "Item"]

        if scope.type == ScopeType.BACKEND:
            return self._backend_files("", resources, scope.include_database)
        return self._backend_files("backend/", resources, scope.include_database) + self._frontend_files(
            "frontend/", resources
        )

    def _backend_files(self, root: str, resources: list[str], with_database: bool) -> list[GeneratedFile]:
        dependencies = {"express": "^4.19.2", "cors": "^2.8.5"}
        if with_database:
            dependencies["@prisma/client"] = "^5.14.0"
        manifest = {
            "name": "generated-api",
            "version": "1.0.0",
            "private": True,
            "scripts": {"dev": "ts-node-dev src/server.ts", "build": "tsc"},
            "dependencies": dependencies,
            "devDependencies": {"typescript": "^5.4.0", "ts-node-dev": "^2.0.0", "@types/express": "^4.17.21"},
        }

        route_imports = []
        route_mounts = []
        for resource in resources:
            names = _names(resource)
            route_imports.append(f"import {names['name']}Routes from './routes/{names['name']}.routes';")
            route_mounts.append(f"  app.use('/api/{names['names']}', {names['name']}Routes);")

        files = [
            GeneratedFile(path=f"{root}package.json", content=json.dumps(manifest, indent=2)),
            GeneratedFile(path=f"{root}tsconfig.json", content=json.dumps(TSCONFIG, indent=2)),
            GeneratedFile(path=f"{root}src/config/env.ts", content=ENV_TS),
            GeneratedFile(path=f"{root}src/utils/HttpError.ts", content=HTTP_ERROR_TS),
            GeneratedFile(path=f"{root}src/utils/asyncHandler.ts", content=ASYNC_HANDLER_TS),
            GeneratedFile(path=f"{root}src/middleware/errorHandler.ts", content=ERROR_HANDLER_TS),
            GeneratedFile(path=f"{root}src/middleware/validate.ts", content=VALIDATE_TS),
            GeneratedFile(
                path=f"{root}src/app.ts",
                content=render_template(
                    APP_TS,
                    {"ROUTE_IMPORTS": "\n".join(route_imports), "ROUTE_MOUNTS": "\n".join(route_mounts)},
                ),
            ),
            GeneratedFile(path=f"{root}src/server.ts", content=SERVER_TS),
        ]

        service_template = PRISMA_SERVICE_TS if with_database else MEMORY_SERVICE_TS
        for resource in resources:
            names = _names(resource)
            lower = names["name"]
            files.extend(
                [
                    GeneratedFile(path=f"{root}src/models/{lower}.model.ts", content=render_template(MODEL_TS, names)),
                    GeneratedFile(
                        path=f"{root}src/services/{lower}.service.ts",
                        content=render_template(service_template, names),
                    ),
                    GeneratedFile(
                        path=f"{root}src/controllers/{lower}.controller.ts",
                        content=render_template(CONTROLLER_TS, names),
                    ),
                    GeneratedFile(
                        path=f"{root}src/routes/{lower}.routes.ts",
                        content=render_template(ROUTES_TS, names),
                    ),
                ]
            )

        if with_database:
            schema = PRISMA_HEADER + "".join(render_template(PRISMA_MODEL, _names(r)) for r in resources)
            files.append(GeneratedFile(path=f"{root}src/db/client.ts", content=DB_CLIENT_TS))
            files.append(GeneratedFile(path=f"{root}prisma/schema.prisma", content=schema))
        return files

    def _frontend_files(self, root: str, resources: list[str]) -> list[GeneratedFile]:
        title = " & ".join(_names(resource)["Names"] for resource in resources)
        manifest = {
            "name": "generated-web",
            "version": "1.0.0",
            "private": True,
            "type": "module",
            "scripts": {"dev": "vite", "build": "tsc && vite build"},
            "dependencies": {"react": "^18.3.1", "react-dom": "^18.3.1"},
            "devDependencies": {"vite": "^5.2.0", "typescript": "^5.4.0", "tailwindcss": "^3.4.0"},
        }
        page_imports = []
        page_entries = []
        for resource in resources:
            names = _names(resource)
            page_imports.append(f"import {names['Names']}Page from './pages/{names['Names']}Page';")
            page_entries.append(f"  {names['Names']}: {names['Names']}Page,")

        files = [
            GeneratedFile(path=f"{root}package.json", content=json.dumps(manifest, indent=2)),
            GeneratedFile(path=f"{root}index.html", content=render_template(INDEX_HTML, {"TITLE": title})),
            GeneratedFile(path=f"{root}src/index.css", content=INDEX_CSS),
            GeneratedFile(path=f"{root}src/main.tsx", content=MAIN_TSX),
            GeneratedFile(
                path=f"{root}src/App.tsx",
                content=render_template(
                    APP_TSX,
                    {
                        "PAGE_IMPORTS": "\n".join(page_imports),
                        "PAGE_ENTRIES": "\n".join(page_entries),
                        "FIRST_PAGE": _names(resources[0])["Names"],
                        "TITLE": title,
                    },
                ),
            ),
            GeneratedFile(path=f"{root}src/api/client.ts", content=API_CLIENT_TS),
            GeneratedFile(path=f"{root}src/components/Layout.tsx", content=LAYOUT_TSX),
            GeneratedFile(path=f"{root}src/components/DataTable.tsx", content=DATA_TABLE_TSX),
        ]
        for resource in resources:
            names = _names(resource)
            files.extend(
                [
                    GeneratedFile(
                        path=f"{root}src/types/{names['name']}.types.ts",
                        content=render_template(TYPES_TS, names),
                    ),
                    GeneratedFile(
                        path=f"{root}src/hooks/use{names['Names']}.ts",
                        content=render_template(HOOK_TS, names),
                    ),
                    GeneratedFile(
                        path=f"{root}src/pages/{names['Names']}Page.tsx",
                        content=render_template(PAGE_TSX, names),
                    ),
                ]
            )
        return files
